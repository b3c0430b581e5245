"""Cache service - advisory Redis cache for read-mostly room data.

Never the source of truth: every entry can be rebuilt from the database, so
Redis failures are logged and treated as misses.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

ROOM_INFO_PREFIX = "room_info:"


class CacheService:
    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Dropping unreadable cache entry %s: %s", key, e)
            await self.evict(key)
            return None

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self.redis.set(key, json.dumps(value, ensure_ascii=False, default=str), ex=ttl)
        except RedisError as e:
            logger.warning("Cache put failed for %s: %s", key, e)

    async def evict(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning("Cache evict failed for %s: %s", key, e)

    def _room_info_key(self, room_id: int) -> str:
        return f"{ROOM_INFO_PREFIX}{room_id}"

    async def get_room_info(self, room_id: int) -> dict | None:
        return await self.get(self._room_info_key(room_id))

    async def cache_room_info(self, room_id: int, info: dict, ttl: int) -> None:
        await self.put(self._room_info_key(room_id), info, ttl=ttl)

    async def evict_room_info(self, room_id: int) -> None:
        await self.evict(self._room_info_key(room_id))
