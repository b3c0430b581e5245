"""Redis async client backing the advisory cache layer."""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from lucidchat.config import settings

logger = logging.getLogger(__name__)

redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client singleton (lazy init)."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return redis_client


async def redis_available() -> bool:
    """Health probe; the app keeps working without Redis, only uncached."""
    try:
        return bool(await get_redis_client().ping())
    except RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    """Close the Redis connection if open."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
