"""
Shared test configuration for APISIX SDK tests
"""
from typing import Any, Dict

import httpx
import pytest

from apisix_sdk.base import ApisixClient
from apisix_sdk.sdk import ApisixSDK
from tests.fixtures.apisix_server import ADMIN_URL, API_KEY, CONTROL_URL, FakeAPISIX, FakeClock, RecordingSleep


def client_config(**overrides) -> Dict[str, Any]:
    config = {
        "adminAPI": {"baseURL": ADMIN_URL, "apiKey": API_KEY},
        "controlAPI": {"baseURL": CONTROL_URL},
        "retryDelay": 0.01,
        "retryJitter": 0,
    }
    config.update(overrides)
    return config


@pytest.fixture
def server():
    return FakeAPISIX()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_client(server, clock, sleep):
    """Factory for clients wired to the fake server"""

    def _make(**overrides) -> ApisixClient:
        return ApisixClient(
            client_config(**overrides), transport=httpx.MockTransport(server), clock=clock, sleep=sleep
        )

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def sdk(server, clock, sleep):
    return ApisixSDK(client_config(), transport=httpx.MockTransport(server), clock=clock, sleep=sleep)
