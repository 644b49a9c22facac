"""Shared Redis client with graceful degradation.

Rate limiting, the permission cache and the ZKBioTime token cache all go
through this module. When Redis is unreachable every helper behaves as a
cache miss, so the application keeps working against the database alone.
"""

import json
import logging
import time
from typing import Any, Optional

from redis import Redis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

# Seconds to wait after a failed ping before connecting again
REDIS_RETRY_SECONDS = 30

_client: Optional[Redis] = None
_failed_at: Optional[float] = None


def get_redis_client() -> Optional[Redis]:
    """Get the process-wide Redis client.

    Returns None if Redis is not available. After a failed connection attempt
    no new attempt is made for REDIS_RETRY_SECONDS, so an outage does not cost
    a connect timeout on every request but a recovered Redis is picked up.
    """
    global _client, _failed_at

    if _client is not None:
        return _client
    if not settings.REDIS_URL:
        return None
    if _failed_at is not None and time.monotonic() - _failed_at < REDIS_RETRY_SECONDS:
        return None

    try:
        client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
        )
        client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable, retrying in {REDIS_RETRY_SECONDS}s: {e}")
        _failed_at = time.monotonic()
        return None

    if _failed_at is not None:
        logger.info("Redis connection restored")
    _client = client
    _failed_at = None
    return _client


def reset_redis_client(client: Optional[Redis] = None) -> None:
    """Drop the cached client (or install a specific one, e.g. in tests)."""
    global _client, _failed_at
    _client = client
    _failed_at = None


def cache_get_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None
    try:
        raw = client.get(key)
    except RedisError as e:
        logger.warning(f"Redis GET failed for {key}: {e}")
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def cache_set_json(key: str, value: Any, ttl_seconds: int) -> bool:
    client = get_redis_client()
    if client is None:
        return False
    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
        return True
    except RedisError as e:
        logger.warning(f"Redis SETEX failed for {key}: {e}")
        return False


def cache_delete(*keys: str) -> None:
    client = get_redis_client()
    if client is None or not keys:
        return
    try:
        client.delete(*keys)
    except RedisError as e:
        logger.warning(f"Redis DELETE failed for {keys}: {e}")
