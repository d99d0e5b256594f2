"""
Tests for the Control API facade
"""
import pytest

from tests.fixtures import CONTROL_URL, reply


class TestHealth:
    @pytest.mark.asyncio
    async def test_is_healthy(self, sdk, server):
        server.control("GET", "/v1/healthcheck", reply(200, {"status": "ok"}))
        assert await sdk.control.is_healthy() is True

    @pytest.mark.asyncio
    async def test_unhealthy_status(self, sdk, server):
        server.control("GET", "/v1/healthcheck", reply(200, {"status": "degraded"}))
        assert await sdk.control.is_healthy() is False

    @pytest.mark.asyncio
    async def test_failure_collapses_to_false(self, sdk, server, sleep):
        server.control("GET", "/v1/healthcheck", reply(503, "down"))
        assert await sdk.control.is_healthy() is False
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_health_is_never_cached(self, sdk, server):
        server.control("GET", "/v1/healthcheck", reply(200, {"status": "ok"}))
        await sdk.control.health_check()
        await sdk.control.health_check()
        assert len(server.calls("GET", "/v1/healthcheck")) == 2


class TestRuntimeViews:
    @pytest.mark.asyncio
    async def test_paths(self, sdk, server):
        server.control("GET", "/v1/plugins", reply(200, [{"name": "key-auth"}]))
        server.control("GET", "/v1/healthcheck/upstreams/u1", reply(200, {"name": "u1", "nodes": []}))
        server.control("GET", "/v1/schema/route", reply(200, {"type": "object"}))
        server.control("GET", "/v1/routes", reply(200, [{"value": {"id": "1"}}]))
        server.control("GET", "/v1/upstream/7", reply(200, {"id": "7"}))
        server.control("GET", "/v1/discovery/nacos/dump", reply(200, {"services": {}}))
        server.control("POST", "/v1/gc", reply(200))

        assert await sdk.control.get_plugins() == [{"name": "key-auth"}]
        assert (await sdk.control.get_upstream_health("u1"))["name"] == "u1"
        assert await sdk.control.get_schema("route") == {"type": "object"}
        assert len(await sdk.control.get_routes()) == 1
        assert await sdk.control.get_upstream("7") == {"id": "7"}
        assert await sdk.control.get_discovery_dump() == {"services": {}}
        assert await sdk.control.trigger_gc() is None

        assert all(request.url.host == "control.test" for request in server.requests)
        assert all("X-API-KEY" not in request.headers for request in server.requests)

    @pytest.mark.asyncio
    async def test_prometheus_metrics_stay_on_control(self, sdk, server):
        server.control("GET", "/apisix/prometheus/metrics", reply(200, "apisix_nginx_http_current_connections 3\n"))

        text = await sdk.control.get_prometheus_metrics()

        assert "apisix_nginx_http_current_connections" in text
        assert str(server.requests[0].url) == f"{CONTROL_URL}/apisix/prometheus/metrics"


class TestSystemOverview:
    @pytest.mark.asyncio
    async def test_overview(self, sdk, server):
        server.control("GET", "/v1/server_info", reply(200, {"version": "3.2.0"}))
        server.control("GET", "/v1/schema", reply(200, {"main": {}}))
        server.control("GET", "/v1/healthcheck", reply(200, {"status": "ok"}))

        overview = await sdk.control.get_system_overview()

        assert overview["server"]["version"] == "3.2.0"
        assert overview["health"] is True
        # Upstream health is optional; an error leaves it empty
        assert overview["upstream_health"] == []
