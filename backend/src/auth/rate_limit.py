"""Rate limiting for authentication endpoints.

Implements sliding window rate limiting to prevent brute force attacks.
Uses Redis for distributed rate limiting across multiple API instances and
degrades to no limiting when Redis is unavailable.
"""

import hashlib
import time
from typing import Optional

from fastapi import HTTPException, Request, status
from redis import Redis
from redis.exceptions import RedisError

from config import settings
from infrastructure.cache import get_redis_client


def _get_client_identifier(request: Request) -> str:
    """Extract a unique identifier for the client.

    Uses a combination of IP address and User-Agent to create a fingerprint.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"

    user_agent = request.headers.get("User-Agent", "")

    fingerprint = f"{ip}:{user_agent}"
    return hashlib.sha256(fingerprint.encode()).hexdigest()[:32]


def _get_rate_limit_key(identifier: str, endpoint: str) -> str:
    return f"rate_limit:{endpoint}:{identifier}"


def _get_lockout_key(identifier: str) -> str:
    return f"lockout:{identifier}"


def _get_failed_attempts_key(email: str, tenant_slug: str) -> str:
    """Generate Redis key for failed login attempts per account."""
    account_key = f"{tenant_slug}:{email.lower()}"
    return f"failed_attempts:{hashlib.sha256(account_key.encode()).hexdigest()[:32]}"


class RateLimiter:
    """Rate limiter using Redis sliding window algorithm.

    Args:
        redis: Explicit client (tests). Defaults to the shared client,
            looked up lazily on every call so a late Redis start is picked up.
    """

    def __init__(self, redis: Optional[Redis] = None):
        self._redis = redis

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis if self._redis is not None else get_redis_client()

    def is_rate_limited(self, request: Request, endpoint: str = "auth") -> bool:
        """Check if client is rate limited.

        Args:
            request: FastAPI request object
            endpoint: Endpoint identifier for rate limiting

        Returns:
            True if client should be rate limited
        """
        redis = self.redis
        if not redis:
            return False

        key = _get_rate_limit_key(_get_client_identifier(request), endpoint)
        window_start = int(time.time()) - settings.RATE_LIMIT_WINDOW

        try:
            redis.zremrangebyscore(key, 0, window_start)
            return redis.zcard(key) >= settings.RATE_LIMIT_MAX_ATTEMPTS
        except RedisError:
            return False

    def record_attempt(self, request: Request, endpoint: str = "auth") -> int:
        """Record an authentication attempt.

        Returns:
            Number of attempts in current window
        """
        redis = self.redis
        if not redis:
            return 0

        key = _get_rate_limit_key(_get_client_identifier(request), endpoint)
        now = time.time()

        try:
            # Member must be unique per attempt, score is the timestamp
            redis.zadd(key, {f"{now:.6f}": now})
            redis.expire(key, settings.RATE_LIMIT_WINDOW)
            return redis.zcard(key)
        except RedisError:
            return 0

    def is_locked_out(self, request: Request) -> bool:
        redis = self.redis
        if not redis:
            return False
        try:
            return redis.exists(_get_lockout_key(_get_client_identifier(request))) > 0
        except RedisError:
            return False

    def get_lockout_remaining(self, request: Request) -> int:
        """Get remaining lockout time in seconds (0 if not locked out)."""
        redis = self.redis
        if not redis:
            return 0
        try:
            return max(0, redis.ttl(_get_lockout_key(_get_client_identifier(request))))
        except RedisError:
            return 0

    def record_failed_login(self, email: str, tenant_slug: str, request: Request) -> bool:
        """Record a failed login attempt for an account.

        Args:
            email: User email
            tenant_slug: Tenant slug used for the login
            request: FastAPI request object

        Returns:
            True if the client is now locked out
        """
        redis = self.redis
        if not redis:
            return False

        account_key = _get_failed_attempts_key(email, tenant_slug)
        try:
            attempts = redis.incr(account_key)
            redis.expire(account_key, settings.RATE_LIMIT_WINDOW)

            if attempts >= settings.LOCKOUT_THRESHOLD:
                lockout_key = _get_lockout_key(_get_client_identifier(request))
                redis.setex(lockout_key, settings.LOCKOUT_DURATION, "1")
                return True
        except RedisError:
            return False

        return False

    def clear_failed_attempts(self, email: str, tenant_slug: str) -> None:
        redis = self.redis
        if not redis:
            return
        try:
            redis.delete(_get_failed_attempts_key(email, tenant_slug))
        except RedisError:
            pass

    def get_attempts_remaining(self, request: Request, endpoint: str = "auth") -> int:
        redis = self.redis
        if not redis:
            return settings.RATE_LIMIT_MAX_ATTEMPTS
        try:
            current_count = redis.zcard(_get_rate_limit_key(_get_client_identifier(request), endpoint))
        except RedisError:
            return settings.RATE_LIMIT_MAX_ATTEMPTS
        return max(0, settings.RATE_LIMIT_MAX_ATTEMPTS - current_count)


rate_limiter = RateLimiter()


def check_rate_limit(request: Request) -> None:
    """Check rate limit and raise 429 if exceeded.

    Use as a dependency in FastAPI endpoints:

        @router.post("/login")
        def login(request: Request, _: None = Depends(check_rate_limit)):
            ...
    """
    if rate_limiter.is_locked_out(request):
        remaining = rate_limiter.get_lockout_remaining(request)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many failed attempts. Account locked for {remaining} seconds.",
            headers={"Retry-After": str(remaining)}
        )

    if rate_limiter.is_rate_limited(request, "auth"):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please wait before trying again.",
            headers={"Retry-After": str(settings.RATE_LIMIT_WINDOW)}
        )

    rate_limiter.record_attempt(request, "auth")
