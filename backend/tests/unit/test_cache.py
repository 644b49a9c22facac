"""Unit tests for the shared Redis client

Tests cover:
- No client when Redis is not configured
- A failed ping is not retried before the backoff expires
- A recovered Redis is picked up after the backoff
- JSON helpers degrade to cache misses without Redis
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from infrastructure import cache


class FakeRedis:
    def __init__(self, healthy):
        self.healthy = healthy
        self.store = {}

    def ping(self):
        if not self.healthy:
            raise RedisConnectionError("Connection refused")
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


@pytest.fixture
def redis_server(monkeypatch):
    """Redis that is down until ``server["up"]`` is set; counts connects."""
    server = {"up": False, "connects": 0, "now": 1000.0}

    def from_url(url, **kwargs):
        server["connects"] += 1
        return FakeRedis(server["up"])

    monkeypatch.setattr(cache.settings, "REDIS_URL", "redis://cache.internal:6379/0")
    monkeypatch.setattr(cache.Redis, "from_url", from_url)
    monkeypatch.setattr(cache.time, "monotonic", lambda: server["now"])
    return server


class TestRedisClient:
    def test_unconfigured_redis_returns_none(self, monkeypatch):
        monkeypatch.setattr(cache.settings, "REDIS_URL", "")

        assert cache.get_redis_client() is None

    def test_failure_is_not_retried_within_backoff(self, redis_server):
        assert cache.get_redis_client() is None
        redis_server["up"] = True
        redis_server["now"] += cache.REDIS_RETRY_SECONDS - 1

        assert cache.get_redis_client() is None
        assert redis_server["connects"] == 1

    def test_recovered_redis_is_used_after_backoff(self, redis_server):
        assert cache.get_redis_client() is None
        redis_server["up"] = True
        redis_server["now"] += cache.REDIS_RETRY_SECONDS

        client = cache.get_redis_client()

        assert isinstance(client, FakeRedis)
        assert redis_server["connects"] == 2
        assert cache.get_redis_client() is client

    def test_reset_clears_backoff(self, redis_server):
        assert cache.get_redis_client() is None
        redis_server["up"] = True

        cache.reset_redis_client()

        assert cache.get_redis_client() is not None


class TestJsonHelpers:
    def test_miss_without_redis(self):
        assert cache.cache_get_json("perm:1") is None
        assert cache.cache_set_json("perm:1", ["crm.leads.view"], 60) is False

    def test_round_trip_through_installed_client(self):
        cache.reset_redis_client(FakeRedis(healthy=True))

        assert cache.cache_set_json("perm:1", ["crm.leads.view"], 60) is True
        assert cache.cache_get_json("perm:1") == ["crm.leads.view"]
