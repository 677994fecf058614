"""
Shared async Redis client (health probe and arq job enqueueing).
"""

from redis.asyncio import Redis

from marketsync.config import get_settings

_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """
    Get or create the shared async Redis client.

    The client is created lazily on first access and reused for all
    subsequent requests.
    """
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on application shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
