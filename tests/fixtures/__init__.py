"""
Test Fixtures Package

Provides the scripted APISIX server (FakeAPISIX) and time doubles shared by
the unit tests.
"""
from .apisix_server import ADMIN_URL, API_KEY, CONTROL_URL, FakeAPISIX, FakeClock, RecordingSleep, reply

__all__ = ["ADMIN_URL", "API_KEY", "CONTROL_URL", "FakeAPISIX", "FakeClock", "RecordingSleep", "reply"]
