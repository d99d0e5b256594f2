"""
Admin API resource facades

Each facade is a thin layer over ApisixClient: it builds the Admin endpoint,
normalizes every envelope before handing it back, checks version gated
features and drops cached reads of its endpoint after any mutation.
"""
from typing import Any, Dict, List, Optional

from core.exceptions import ApisixSDKError, ValidationError
from core.logging import get_logger

from .base import ApisixClient
from .exceptions import FeatureNotSupportedError
from .normalizer import DEFAULT_PAGE_SIZE
from .types import PaginatedResult
from .upstream_nodes import add_node, parse_nodes, removal_patch, to_wire, update_weight

# Fields the server owns; never copied into a new resource
SERVER_FIELDS = ("id", "create_time", "update_time")

SECRET_MANAGERS = ("vault", "aws", "gcp")


class AdminResource:
    """CRUD operations for one Admin API collection"""

    path: str = ""
    feature: Optional[str] = None

    def __init__(self, client: ApisixClient, path: Optional[str] = None):
        self.client = client
        if path is not None:
            self.path = path
        self.logger = get_logger(f"apisix.resources.{self.path.strip('/').replace('/', '.')}", domain="apisix")

    @property
    def endpoint(self) -> str:
        return self.client.admin_endpoint(self.path)

    async def _require_feature(self) -> None:
        if self.feature is None:
            return
        if not await self.client.version.supports(self.feature):
            raise FeatureNotSupportedError(self.feature, await self.client.get_version())

    def _invalidate(self) -> None:
        dropped = self.client.invalidate_cache(self.endpoint)
        if dropped:
            self.logger.debug(f"Invalidated {dropped} cached reads for {self.endpoint}")

    async def list(self, **filters) -> List[Dict[str, Any]]:
        """All items, optionally filtered server-side (name, label, uri, page, page_size)"""
        await self._require_feature()
        return self.client.extract_list(await self.client.list(self.endpoint, filters or None))

    async def list_paginated(
        self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, **filters
    ) -> PaginatedResult:
        await self._require_feature()
        return await self.client.list_paginated(self.endpoint, page, page_size, filters or None)

    async def get(self, id: str) -> Dict[str, Any]:
        await self._require_feature()
        return self.client.extract_value(await self.client.get_one(self.endpoint, id))

    async def create(self, data: Dict[str, Any], id: Optional[str] = None) -> Dict[str, Any]:
        await self._require_feature()
        try:
            return self.client.extract_value(await self.client.create(self.endpoint, data, id))
        finally:
            self._invalidate()

    async def update(self, id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._require_feature()
        try:
            return self.client.extract_value(await self.client.update(self.endpoint, id, data))
        finally:
            self._invalidate()

    async def patch(self, id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._require_feature()
        try:
            return self.client.extract_value(await self.client.partial_update(self.endpoint, id, data))
        finally:
            self._invalidate()

    async def delete(self, id: str, force: bool = False) -> bool:
        """Delete by id; force=True deletes even when other resources still refer to it"""
        await self._require_feature()
        try:
            if force:
                await self.client.remove_with_query(self.endpoint, id, {"force": "true"})
            else:
                await self.client.remove(self.endpoint, id)
        finally:
            self._invalidate()
        return True

    async def exists(self, id: str) -> bool:
        await self._require_feature()
        return await self.client.check_exists(self.endpoint, id)

    async def clone(
        self, source_id: str, modifications: Optional[Dict[str, Any]] = None, new_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a copy of an existing resource, minus its server-owned fields"""
        source = await self.get(source_id)
        data = {k: v for k, v in source.items() if k not in SERVER_FIELDS}
        data.update(modifications or {})
        return await self.create(data, new_id)


class Routes(AdminResource):
    path = "/routes"

    async def find_by_uri(self, pattern: str) -> List[Dict[str, Any]]:
        routes = await self.list()
        return [
            route
            for route in routes
            if pattern in (route.get("uri") or "") or any(pattern in uri for uri in route.get("uris") or [])
        ]

    async def find_by_method(self, method: str) -> List[Dict[str, Any]]:
        method = method.upper()
        return [route for route in await self.list() if method in (route.get("methods") or [])]

    async def find_by_host(self, host: str) -> List[Dict[str, Any]]:
        return [
            route for route in await self.list() if route.get("host") == host or host in (route.get("hosts") or [])
        ]

    async def enable(self, id: str) -> Dict[str, Any]:
        return await self.patch(id, {"status": 1})

    async def disable(self, id: str) -> Dict[str, Any]:
        return await self.patch(id, {"status": 0})


class Services(AdminResource):
    path = "/services"


class Upstreams(AdminResource):
    path = "/upstreams"

    async def find_by_type(self, balancer: str) -> List[Dict[str, Any]]:
        """Upstreams using a load balancing type such as "roundrobin" or "chash" """
        return [upstream for upstream in await self.list() if upstream.get("type") == balancer]

    async def add_node(self, id: str, host: str, port: int, weight: int = 1) -> Dict[str, Any]:
        nodes = parse_nodes((await self.get(id)).get("nodes"))
        return await self.patch(id, {"nodes": to_wire(add_node(nodes, host, port, weight))})

    async def remove_node(self, id: str, host: str, port: int) -> Dict[str, Any]:
        nodes = parse_nodes((await self.get(id)).get("nodes"))
        return await self.patch(id, {"nodes": removal_patch(nodes, host, port)})

    async def update_node_weight(self, id: str, host: str, port: int, weight: int) -> Dict[str, Any]:
        nodes = parse_nodes((await self.get(id)).get("nodes"))
        return await self.patch(id, {"nodes": to_wire(update_weight(nodes, host, port, weight))})


class Consumers(AdminResource):
    path = "/consumers"

    async def create(self, data: Dict[str, Any], id: Optional[str] = None) -> Dict[str, Any]:
        """Consumers are keyed by username"""
        username = id or data.get("username")
        if not username:
            raise ValidationError("Consumer username is required", field="username")
        return await super().create(data, username)

    async def find_by_group(self, group_id: str) -> List[Dict[str, Any]]:
        return [consumer for consumer in await self.list() if consumer.get("group_id") == group_id]


class SSLCertificates(AdminResource):
    path = "/ssls"

    async def find_by_sni(self, sni: str) -> List[Dict[str, Any]]:
        return [cert for cert in await self.list() if cert.get("sni") == sni or sni in (cert.get("snis") or [])]


class GlobalRules(AdminResource):
    path = "/global_rules"


class ConsumerGroups(AdminResource):
    path = "/consumer_groups"


class PluginConfigs(AdminResource):
    path = "/plugin_configs"


class StreamRoutes(AdminResource):
    path = "/stream_routes"
    feature = "stream_routes"


class Protos(AdminResource):
    path = "/protos"


class Credentials:
    """Credentials nested under a consumer (APISIX 3.0+)"""

    def __init__(self, client: ApisixClient):
        self.client = client

    def for_consumer(self, consumer_id: str) -> AdminResource:
        resource = AdminResource(self.client, f"/consumers/{consumer_id}/credentials")
        resource.feature = "credentials"
        return resource

    async def list(self, consumer_id: str, **filters) -> List[Dict[str, Any]]:
        return await self.for_consumer(consumer_id).list(**filters)

    async def list_paginated(
        self, consumer_id: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, **filters
    ) -> PaginatedResult:
        return await self.for_consumer(consumer_id).list_paginated(page, page_size, **filters)

    async def get(self, consumer_id: str, credential_id: str) -> Dict[str, Any]:
        return await self.for_consumer(consumer_id).get(credential_id)

    async def create(
        self, consumer_id: str, data: Dict[str, Any], credential_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.for_consumer(consumer_id).create(data, credential_id)

    async def update(self, consumer_id: str, credential_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.for_consumer(consumer_id).update(credential_id, data)

    async def patch(self, consumer_id: str, credential_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.for_consumer(consumer_id).patch(credential_id, data)

    async def delete(self, consumer_id: str, credential_id: str) -> bool:
        return await self.for_consumer(consumer_id).delete(credential_id)

    async def exists(self, consumer_id: str, credential_id: str) -> bool:
        return await self.for_consumer(consumer_id).exists(credential_id)

    async def find_by_plugin(self, consumer_id: str, plugin_name: str) -> List[Dict[str, Any]]:
        credentials = await self.list(consumer_id)
        return [credential for credential in credentials if plugin_name in (credential.get("plugins") or {})]


class Secrets:
    """Secret manager configurations (APISIX 3.0+), one collection per manager"""

    def __init__(self, client: ApisixClient):
        self.client = client

    def manager(self, name: str) -> AdminResource:
        if name not in SECRET_MANAGERS:
            raise ValidationError(f"Unknown secret manager: {name}", field="manager")
        resource = AdminResource(self.client, f"/secrets/{name}")
        resource.feature = "secrets"
        return resource

    async def list(self, manager: str, **filters) -> List[Dict[str, Any]]:
        return await self.manager(manager).list(**filters)

    async def get(self, manager: str, id: str) -> Dict[str, Any]:
        return await self.manager(manager).get(id)

    async def create(self, manager: str, data: Dict[str, Any], id: str) -> Dict[str, Any]:
        return await self.manager(manager).create(data, id)

    async def update(self, manager: str, id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.manager(manager).update(id, data)

    async def delete(self, manager: str, id: str) -> bool:
        return await self.manager(manager).delete(id)

    async def list_all(self) -> Dict[str, List[Dict[str, Any]]]:
        return {name: await self.list(name) for name in SECRET_MANAGERS}

    async def create_vault_secret(self, id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not all(data.get(field) for field in ("uri", "prefix", "token")):
            raise ValidationError("URI, prefix, and token are required for Vault secrets")
        if not str(data["uri"]).startswith(("http://", "https://")):
            raise ValidationError("Vault URI must start with http:// or https://", field="uri")
        return await self.create("vault", data, id)


class Plugins:
    """Plugin catalogue, schemas and plugin metadata"""

    def __init__(self, client: ApisixClient):
        self.client = client
        self.logger = get_logger("apisix.resources.plugins", domain="apisix")
        self._available: Optional[List[str]] = None

    async def list(self) -> List[str]:
        """Names of the plugins the server has loaded"""
        response = await self.client.get(self.client.admin_endpoint("/plugins/list"))
        if isinstance(response, dict):
            return list(response.keys())
        return list(response or [])

    async def get_schema(self, name: str) -> Dict[str, Any]:
        return await self.client.get(self.client.control_endpoint(f"/v1/schema/plugin/{name}"))

    async def is_available(self, name: str, refresh: bool = False) -> bool:
        """Whether a plugin is loaded; any failure to find out counts as False"""
        if self._available is None or refresh:
            try:
                self._available = await self.list()
            except ApisixSDKError as e:
                self.logger.warning(f"Failed to check plugin availability for {name}: {e}")
                return False
        return name in self._available

    async def get_metadata(self, name: str) -> Dict[str, Any]:
        return self.client.extract_value(await self.client.get(self.client.admin_endpoint(f"/plugin_metadata/{name}")))

    async def update_metadata(self, name: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = self.client.admin_endpoint("/plugin_metadata")
        try:
            return self.client.extract_value(await self.client.update(endpoint, name, metadata))
        finally:
            self.client.invalidate_cache(endpoint)

    async def delete_metadata(self, name: str) -> bool:
        endpoint = self.client.admin_endpoint("/plugin_metadata")
        try:
            await self.client.remove(endpoint, name)
        finally:
            self.client.invalidate_cache(endpoint)
        return True
