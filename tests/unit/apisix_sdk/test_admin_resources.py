"""
Tests for the Admin API resource facades
"""
import pytest

from apisix_sdk.exceptions import ApisixAPIError, FeatureNotSupportedError
from core.exceptions import ValidationError
from tests.fixtures import reply


def current_item(kind: str, id: str, value: dict) -> dict:
    return {"key": f"/apisix/{kind}/{id}", "value": value}


class TestRoutes:
    @pytest.mark.asyncio
    async def test_list_normalizes(self, sdk, server):
        server.admin(
            "GET",
            "/routes",
            reply(200, {"total": 2, "list": [current_item("routes", "1", {"uri": "/a"}), current_item("routes", "2", {"uri": "/b"})]}),
        )

        routes = await sdk.routes.list()

        assert routes == [{"uri": "/a", "id": "1"}, {"uri": "/b", "id": "2"}]

    @pytest.mark.asyncio
    async def test_get_legacy_envelope(self, sdk, server):
        server.admin("GET", "/routes/1", reply(200, {"node": {"key": "/apisix/routes/1", "value": {"uri": "/a"}}, "action": "get"}))
        assert await sdk.routes.get("1") == {"uri": "/a", "id": "1"}

    @pytest.mark.asyncio
    async def test_editing_a_result_leaves_cached_read_intact(self, sdk, server):
        server.admin("GET", "/routes/1", reply(200, current_item("routes", "1", {"id": "1", "uri": "/a"})))

        first = await sdk.routes.get("1")
        first["uri"] = "/edited"
        second = await sdk.routes.get("1")

        assert second == {"id": "1", "uri": "/a"}
        assert len(server.calls("GET", "/apisix/admin/routes/1")) == 1

    @pytest.mark.asyncio
    async def test_mutation_invalidates_cached_reads(self, sdk, server):
        server.admin("GET", "/routes", reply(200, {"list": []}))
        server.admin("POST", "/routes", reply(201, current_item("routes", "9", {"uri": "/new"})))

        await sdk.routes.list()
        await sdk.routes.list()
        created = await sdk.routes.create({"uri": "/new"})
        await sdk.routes.list()

        assert created == {"uri": "/new", "id": "9"}
        assert len(server.calls("GET", "/apisix/admin/routes")) == 2

    @pytest.mark.asyncio
    async def test_failed_mutation_still_invalidates(self, sdk, server):
        server.admin("GET", "/routes", reply(200, {"list": []}))
        server.admin("PUT", "/routes/1", reply(400, {"error_msg": "invalid configuration"}))

        await sdk.routes.list()
        with pytest.raises(ApisixAPIError):
            await sdk.routes.update("1", {"uri": 42})
        await sdk.routes.list()

        assert len(server.calls("GET", "/apisix/admin/routes")) == 2

    @pytest.mark.asyncio
    async def test_delete_with_force(self, sdk, server):
        server.admin("DELETE", "/routes/1", reply(200, {"deleted": "1"}))

        assert await sdk.routes.delete("1", force=True) is True
        assert await sdk.routes.delete("1") is True

        forced, plain = server.calls("DELETE", "/apisix/admin/routes/1")
        assert forced.url.params["force"] == "true"
        assert "force" not in plain.url.params

    @pytest.mark.asyncio
    async def test_exists(self, sdk, server):
        server.admin("GET", "/routes/1", reply(200, current_item("routes", "1", {})))
        assert await sdk.routes.exists("1") is True
        assert await sdk.routes.exists("2") is False

    @pytest.mark.asyncio
    async def test_finders(self, sdk, server):
        server.admin(
            "GET",
            "/routes",
            reply(
                200,
                {
                    "list": [
                        current_item("routes", "1", {"uri": "/api/users", "methods": ["GET"], "host": "a.com"}),
                        current_item("routes", "2", {"uris": ["/web/*", "/api/orders"], "hosts": ["b.com"]}),
                        current_item("routes", "3", {"uri": "/health"}),
                    ]
                },
            ),
        )

        assert [r["id"] for r in await sdk.routes.find_by_uri("/api")] == ["1", "2"]
        assert [r["id"] for r in await sdk.routes.find_by_method("get")] == ["1"]
        assert [r["id"] for r in await sdk.routes.find_by_host("b.com")] == ["2"]

    @pytest.mark.asyncio
    async def test_enable_disable(self, sdk, server):
        server.admin("PATCH", "/routes/1", reply(200, current_item("routes", "1", {"status": 0})))

        await sdk.routes.enable("1")
        await sdk.routes.disable("1")

        bodies = [server.body(r) for r in server.calls("PATCH", "/apisix/admin/routes/1")]
        assert bodies == [{"status": 1}, {"status": 0}]

    @pytest.mark.asyncio
    async def test_list_paginated(self, sdk, server):
        server.version("3.1.0")
        server.admin("GET", "/routes", reply(200, {"total": 1, "list": [current_item("routes", "1", {})]}))

        page = await sdk.routes.list_paginated(page=1, page_size=5, name="a")

        assert page.items == [{"id": "1"}]
        assert server.calls("GET", "/apisix/admin/routes")[0].url.params["name"] == "a"


class TestUpstreams:
    @pytest.mark.asyncio
    async def test_add_node_map_form(self, sdk, server):
        upstream = {"type": "roundrobin", "nodes": {"10.0.0.1:80": 1}}
        server.admin("GET", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))
        server.admin("PATCH", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))

        await sdk.upstreams.add_node("u1", "10.0.0.2", 8080, weight=3)

        patch = server.body(server.calls("PATCH", "/apisix/admin/upstreams/u1")[0])
        assert patch == {"nodes": {"10.0.0.1:80": 1, "10.0.0.2:8080": 3}}

    @pytest.mark.asyncio
    async def test_add_node_list_form(self, sdk, server):
        upstream = {"type": "roundrobin", "nodes": [{"host": "10.0.0.1", "port": 80, "weight": 1}]}
        server.admin("GET", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))
        server.admin("PATCH", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))

        await sdk.upstreams.add_node("u1", "10.0.0.2", 8080)

        patch = server.body(server.calls("PATCH", "/apisix/admin/upstreams/u1")[0])
        assert patch["nodes"][-1] == {"host": "10.0.0.2", "port": 8080, "weight": 1}

    @pytest.mark.asyncio
    async def test_remove_node_map_form_sends_null(self, sdk, server):
        upstream = {"nodes": {"10.0.0.1:80": 1, "10.0.0.2:80": 1}}
        server.admin("GET", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))
        server.admin("PATCH", "/upstreams/u1", reply(200, current_item("upstreams", "u1", {})))

        await sdk.upstreams.remove_node("u1", "10.0.0.1", 80)

        patch = server.body(server.calls("PATCH", "/apisix/admin/upstreams/u1")[0])
        assert patch == {"nodes": {"10.0.0.1:80": None, "10.0.0.2:80": 1}}

    @pytest.mark.asyncio
    async def test_update_node_weight(self, sdk, server):
        upstream = {"nodes": {"10.0.0.1:80": 1}}
        server.admin("GET", "/upstreams/u1", reply(200, current_item("upstreams", "u1", upstream)))
        server.admin("PATCH", "/upstreams/u1", reply(200, current_item("upstreams", "u1", {})))

        await sdk.upstreams.update_node_weight("u1", "10.0.0.1", 80, 7)

        patch = server.body(server.calls("PATCH", "/apisix/admin/upstreams/u1")[0])
        assert patch == {"nodes": {"10.0.0.1:80": 7}}

    @pytest.mark.asyncio
    async def test_clone(self, sdk, server):
        source = {"id": "u1", "type": "roundrobin", "nodes": {"a:80": 1}, "create_time": 1, "update_time": 2}
        server.admin("GET", "/upstreams/u1", reply(200, current_item("upstreams", "u1", source)))
        server.admin("PUT", "/upstreams/u2", reply(201, current_item("upstreams", "u2", {"type": "chash"})))

        await sdk.upstreams.clone("u1", {"type": "chash"}, new_id="u2")

        body = server.body(server.calls("PUT", "/apisix/admin/upstreams/u2")[0])
        assert body == {"type": "chash", "nodes": {"a:80": 1}}

    @pytest.mark.asyncio
    async def test_find_by_type(self, sdk, server):
        server.admin(
            "GET",
            "/upstreams",
            reply(200, {"list": [current_item("upstreams", "1", {"type": "chash"}), current_item("upstreams", "2", {"type": "roundrobin"})]}),
        )
        assert [u["id"] for u in await sdk.upstreams.find_by_type("chash")] == ["1"]


class TestConsumers:
    @pytest.mark.asyncio
    async def test_create_keyed_by_username(self, sdk, server):
        server.admin("PUT", "/consumers/jack", reply(201, current_item("consumers", "jack", {"username": "jack"})))

        consumer = await sdk.consumers.create({"username": "jack", "plugins": {"key-auth": {"key": "k"}}})

        assert consumer["username"] == "jack"

    @pytest.mark.asyncio
    async def test_create_requires_username(self, sdk):
        with pytest.raises(ValidationError):
            await sdk.consumers.create({"plugins": {}})


class TestVersionGatedResources:
    @pytest.mark.asyncio
    async def test_stream_routes_unsupported_on_old_server(self, sdk, server):
        server.version("2.9.0")
        with pytest.raises(FeatureNotSupportedError) as exc_info:
            await sdk.stream_routes.list()
        assert exc_info.value.version == "2.9.0"
        assert server.calls("GET", "/apisix/admin/stream_routes") == []

    @pytest.mark.asyncio
    async def test_stream_routes_supported(self, sdk, server):
        server.version("2.15.0")
        server.admin("GET", "/stream_routes", reply(200, legacy_stream_routes()))
        assert await sdk.stream_routes.list() == [{"server_port": 9100, "id": "s1"}]

    @pytest.mark.asyncio
    async def test_credentials_require_v3(self, sdk, server):
        server.version("2.15.0")
        with pytest.raises(FeatureNotSupportedError):
            await sdk.credentials.list("jack")

    @pytest.mark.asyncio
    async def test_credentials_scoped_to_consumer(self, sdk, server):
        server.version("3.2.0")
        server.admin(
            "GET",
            "/consumers/jack/credentials",
            reply(200, {"list": [current_item("consumers/jack/credentials", "c1", {"plugins": {"key-auth": {}}})]}),
        )
        server.admin("PUT", "/consumers/jack/credentials/c2", reply(201, current_item("consumers/jack/credentials", "c2", {})))

        assert await sdk.credentials.find_by_plugin("jack", "key-auth") == [{"plugins": {"key-auth": {}}, "id": "c1"}]
        await sdk.credentials.create("jack", {"plugins": {"basic-auth": {}}}, "c2")
        assert len(server.calls("PUT", "/apisix/admin/consumers/jack/credentials/c2")) == 1

    @pytest.mark.asyncio
    async def test_secrets(self, sdk, server):
        server.version("3.2.0")
        server.admin("GET", "/secrets/vault", reply(200, {"list": [current_item("secrets/vault", "v1", {"uri": "https://vault"})]}))
        server.admin("GET", "/secrets/aws", reply(200, {"list": []}))
        server.admin("GET", "/secrets/gcp", reply(200, {"list": []}))

        assert await sdk.secrets.list_all() == {"vault": [{"uri": "https://vault", "id": "v1"}], "aws": [], "gcp": []}

        with pytest.raises(ValidationError):
            await sdk.secrets.list("keychain")
        with pytest.raises(ValidationError):
            await sdk.secrets.create_vault_secret("v2", {"uri": "vault:8200", "prefix": "kv", "token": "t"})


def legacy_stream_routes() -> dict:
    return {"node": {"key": "/apisix/stream_routes", "nodes": [{"key": "/apisix/stream_routes/s1", "value": {"server_port": 9100}}]}}


class TestPlugins:
    @pytest.mark.asyncio
    async def test_list_accepts_array_and_mapping(self, sdk, server):
        server.admin("GET", "/plugins/list", reply(200, ["key-auth", "limit-count"]))
        assert await sdk.plugins.list() == ["key-auth", "limit-count"]

        sdk.clear_cache()
        server.admin("GET", "/plugins/list", reply(200, {"key-auth": True, "cors": True}))
        assert await sdk.plugins.list() == ["key-auth", "cors"]

    @pytest.mark.asyncio
    async def test_is_available(self, sdk, server):
        server.admin("GET", "/plugins/list", reply(200, ["key-auth"]))

        assert await sdk.plugins.is_available("key-auth") is True
        assert await sdk.plugins.is_available("ai-proxy") is False
        # The plugin list is fetched once
        assert len(server.calls("GET", "/apisix/admin/plugins/list")) == 1

    @pytest.mark.asyncio
    async def test_is_available_swallows_errors(self, sdk, server):
        server.admin("GET", "/plugins/list", reply(401, {"error_msg": "failed to check token"}))
        assert await sdk.plugins.is_available("key-auth") is False

    @pytest.mark.asyncio
    async def test_schema_from_control(self, sdk, server):
        server.control("GET", "/v1/schema/plugin/key-auth", reply(200, {"type": "object"}))
        assert await sdk.plugins.get_schema("key-auth") == {"type": "object"}
