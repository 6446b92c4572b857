import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.api.core.config import settings

logger = logging.getLogger("app")

# Global Redis client instance
_redis_client: Optional[redis.Redis] = None
_connection_pool: Optional[ConnectionPool] = None


async def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance

    Raises:
        ValueError: If REDIS_URL is not configured
    """
    global _redis_client, _connection_pool
    if _redis_client is None:
        if not settings.REDIS_URL:
            raise ValueError(
                "REDIS_URL is not configured. Please set REDIS_URL in your .env file "
                "with a valid Redis URL (e.g., redis://localhost:6379/0)"
            )

        _connection_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=5,
            socket_timeout=10,
            socket_keepalive=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        _redis_client = redis.Redis(connection_pool=_connection_pool)
        logger.info("Redis client initialized")
    return _redis_client


async def close_redis_client():
    """Close the Redis client connection and pool."""
    global _redis_client, _connection_pool
    if _redis_client:
        await _redis_client.close()
        _redis_client = None
    if _connection_pool:
        await _connection_pool.disconnect()
        _connection_pool = None
        logger.info("Redis client and connection pool closed")


# ==================== RATE LIMITING ====================


@dataclass
class RateLimitStatus:
    """Outcome of a single fixed-window rate limit hit."""

    allowed: bool
    current: int
    remaining: int
    retry_after: int


async def check_rate_limit(
    identifier: str, max_attempts: int = 5, window_seconds: int = 3600
) -> RateLimitStatus:
    """
    Count one hit for ``identifier`` in a fixed window shared by all instances.

    The first hit creates the counter and sets its expiry; later hits in the
    same window only increment it. A counter left without a TTL (expire lost
    after a crash) is given one again.

    Args:
        identifier: Full counter key suffix, e.g. ``waitlist_signup:203.0.113.7``
        max_attempts: Maximum hits allowed in window
        window_seconds: Window length in seconds

    Returns:
        RateLimitStatus with ``retry_after`` set to the seconds left in the window

    Raises:
        redis.exceptions.RedisError: If Redis cannot be reached. Callers decide
            whether to fail open.
    """
    client = await get_redis_client()
    key = f"ratelimit:{identifier}"

    current = await client.incr(key)
    if current == 1:
        await client.expire(key, window_seconds)
        ttl = window_seconds
    else:
        ttl = await client.ttl(key)
        if ttl is None or ttl < 0:
            await client.expire(key, window_seconds)
            ttl = window_seconds

    if current > max_attempts:
        logger.warning(f"Rate limit exceeded for {identifier}: {current}/{max_attempts}")
        return RateLimitStatus(
            allowed=False, current=current, remaining=0, retry_after=max(int(ttl), 1)
        )

    return RateLimitStatus(
        allowed=True,
        current=current,
        remaining=max(max_attempts - current, 0),
        retry_after=max(int(ttl), 1),
    )
