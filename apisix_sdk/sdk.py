"""
ApisixSDK entry point

Wires one ApisixClient to every resource facade and the Control facade.
"""
from typing import Any, Dict, Optional, Union

import httpx

from core.exceptions import ApisixSDKError
from core.logging import get_logger

from .base import ApisixClient
from .control import Control
from .resources import (
    ConsumerGroups,
    Consumers,
    Credentials,
    GlobalRules,
    PluginConfigs,
    Plugins,
    Protos,
    Routes,
    Secrets,
    Services,
    SSLCertificates,
    StreamRoutes,
    Upstreams,
)
from .types import SDKConfig


class ApisixSDK:
    """
    Client for one APISIX deployment

    Example:
        async with ApisixSDK({"adminAPI": {"baseURL": "http://127.0.0.1:9180", "apiKey": key}}) as sdk:
            routes = await sdk.routes.list()
    """

    def __init__(
        self,
        config: Union[SDKConfig, Dict[str, Any], None] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_options,
    ):
        self.client = ApisixClient(config, transport=transport, **client_options)
        self.logger = get_logger("apisix.sdk", domain="apisix")

        # Admin API
        self.routes = Routes(self.client)
        self.services = Services(self.client)
        self.upstreams = Upstreams(self.client)
        self.consumers = Consumers(self.client)
        self.credentials = Credentials(self.client)
        self.ssl = SSLCertificates(self.client)
        self.global_rules = GlobalRules(self.client)
        self.consumer_groups = ConsumerGroups(self.client)
        self.plugin_configs = PluginConfigs(self.client)
        self.plugins = Plugins(self.client)
        self.stream_routes = StreamRoutes(self.client)
        self.secrets = Secrets(self.client)
        self.protos = Protos(self.client)

        # Control API
        self.control = Control(self.client)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def test_connection(self) -> bool:
        """Whether the Admin API answers an authenticated listing"""
        try:
            await self.routes.list(page_size=1)
            return True
        except ApisixSDKError as e:
            self.logger.warning(f"Admin API connection test failed: {e}")
            return False

    async def test_control_connection(self) -> bool:
        return await self.control.is_healthy()

    async def get_system_status(self) -> Dict[str, Any]:
        admin_connected = await self.test_connection()
        control_connected = await self.test_control_connection()

        overview = None
        if control_connected:
            try:
                overview = await self.control.get_system_overview()
            except ApisixSDKError as e:
                self.logger.warning(f"System overview unavailable: {e}")

        return {
            "admin_api_connected": admin_connected,
            "control_api_connected": control_connected,
            "system_overview": overview,
        }

    async def get_server_info(self) -> Dict[str, Any]:
        return await self.client.get_server_info()

    async def get_version(self) -> str:
        return await self.client.get_version()

    async def supports_feature(self, feature: str) -> bool:
        """Feature flag by name: credentials, secrets, new_response_format, stream_routes, pagination"""
        return await self.client.version.supports(feature)

    async def get_version_compatibility(self) -> Dict[str, Any]:
        version = await self.get_version()
        features = await self.client.get_api_version_config()
        return {
            "version": version,
            "major_version": version.split(".")[0],
            "features": features.as_dict(),
            "deprecated_features": await self.client.version.deprecated_features(),
        }

    def clear_cache(self) -> int:
        return self.client.clear_cache()


def create_apisix_sdk(config: Union[SDKConfig, Dict[str, Any], None] = None, **kwargs) -> ApisixSDK:
    """Create an SDK instance; without a config one is built from APISIX_* settings"""
    return ApisixSDK(config, **kwargs)
