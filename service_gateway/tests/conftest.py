"""
Shared fixtures for Gateway tests.
"""

import pytest

from shared.config import GatewaySettings
from service_gateway.app.caching.store import LocalCacheStore


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local_store(clock):
    return LocalCacheStore(clock=clock)


@pytest.fixture
def gateway_settings():
    """Settings that never touch a remote store."""
    return GatewaySettings(
        _env_file=None,
        oauth_client_id="client-123",
        oauth_client_secret="secret-456",
        upstream_customer_id="cust-1",
        redis_url=None,
        upstash_redis_rest_url=None,
        upstash_redis_rest_token=None,
        rate_limit_per_minute=60,
    )
