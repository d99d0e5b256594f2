"""
Control API facade

Read-mostly runtime views served by the Control API (default port 9090).
"""
from typing import Any, Dict, List, Optional

from core.exceptions import ApisixSDKError
from core.logging import get_logger

from .base import ApisixClient


class Control:
    def __init__(self, client: ApisixClient):
        self.client = client
        self.logger = get_logger("apisix.control", domain="apisix")

    def _endpoint(self, path: str) -> str:
        return self.client.control_endpoint(path)

    async def health_check(self) -> Dict[str, Any]:
        return await self.client.get(self._endpoint("/v1/healthcheck"), skip_cache=True)

    async def is_healthy(self) -> bool:
        """Health probe collapsed to a boolean; failures count as unhealthy"""
        try:
            response = await self.health_check()
        except ApisixSDKError as e:
            self.logger.warning(f"Control API health check failed: {e}")
            return False
        return isinstance(response, dict) and response.get("status") == "ok"

    async def get_server_info(self) -> Dict[str, Any]:
        return await self.client.get(self._endpoint("/v1/server_info"))

    async def get_plugins(self) -> List[Dict[str, Any]]:
        return await self.client.get(self._endpoint("/v1/plugins"))

    async def reload_plugins(self) -> Dict[str, Any]:
        return await self.client.put(self._endpoint("/v1/plugins/reload"))

    async def get_upstream_health(self, upstream_name: Optional[str] = None) -> Any:
        path = f"/v1/healthcheck/upstreams/{upstream_name}" if upstream_name else "/v1/healthcheck/upstreams"
        return await self.client.get(self._endpoint(path), skip_cache=True)

    async def get_schemas(self) -> Dict[str, Any]:
        return await self.client.get(self._endpoint("/v1/schema"))

    async def get_schema(self, resource_type: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/schema/{resource_type}"))

    async def get_plugin_schema(self, plugin_name: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/schema/plugin/{plugin_name}"))

    # Runtime views of the loaded configuration

    async def get_routes(self) -> List[Dict[str, Any]]:
        return await self.client.get(self._endpoint("/v1/routes"))

    async def get_route(self, route_id: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/route/{route_id}"))

    async def get_services(self) -> List[Dict[str, Any]]:
        return await self.client.get(self._endpoint("/v1/services"))

    async def get_service(self, service_id: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/service/{service_id}"))

    async def get_upstreams(self) -> List[Dict[str, Any]]:
        return await self.client.get(self._endpoint("/v1/upstreams"))

    async def get_upstream(self, upstream_id: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/upstream/{upstream_id}"))

    async def get_plugin_metadatas(self) -> List[Dict[str, Any]]:
        return await self.client.get(self._endpoint("/v1/plugin_metadatas"))

    async def get_plugin_metadata(self, plugin_name: str) -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/plugin_metadata/{plugin_name}"))

    async def get_config(self) -> Dict[str, Any]:
        return await self.client.get(self._endpoint("/v1/config"))

    async def get_discovery_dump(self, discovery: str = "nacos") -> Dict[str, Any]:
        return await self.client.get(self._endpoint(f"/v1/discovery/{discovery}/dump"), skip_cache=True)

    async def trigger_gc(self) -> Any:
        return await self.client.post(self._endpoint("/v1/gc"))

    async def get_prometheus_metrics(self) -> str:
        """
        Prometheus exposition text

        The path lives outside /v1/, so it is requested by absolute URL to
        keep it on the Control surface.
        """
        url = f"{self.client.control_config.base_url}/apisix/prometheus/metrics"
        return await self.client.get(url, skip_cache=True)

    async def get_system_overview(self) -> Dict[str, Any]:
        """Server info, schemas and health in one call; upstream health is optional"""
        server = await self.get_server_info()
        schemas = await self.get_schemas()
        healthy = await self.is_healthy()

        upstream_health: Any = []
        try:
            upstream_health = await self.get_upstream_health()
        except ApisixSDKError as e:
            self.logger.info(f"Upstream health unavailable: {e}")

        return {
            "server": server,
            "schemas": schemas,
            "health": healthy,
            "upstream_health": upstream_health,
        }
