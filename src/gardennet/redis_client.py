"""Optional Redis client.

Redis backs rate limiting and the leaderboard cache. Neither is required for
correctness, so an empty `GN_REDIS_URL` leaves the client uninitialized and
both features switch off.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_client: redis.Redis | None = None


async def init_redis(url: str | None) -> None:
    """Create the shared client. A blank URL disables Redis."""
    global _client  # noqa: PLW0603
    if not url:
        logger.info("redis_disabled")
        _client = None
        return
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    logger.info("redis_configured", url=url.rsplit("@", 1)[-1])


async def close_redis() -> None:
    """Close the shared client, if any."""
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Get the Redis client. Raises RuntimeError when Redis is disabled."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


def get_redis_or_none() -> redis.Redis | None:
    """Get the Redis client, or None when caching is unavailable."""
    return _client
