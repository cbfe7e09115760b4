from __future__ import annotations
import time
import redis.asyncio as aioredis
from typing import Optional
from config import get_env

CACHE_PREFIX = "reviewflow:cache:"
EXPIRY_INDEX = "reviewflow:cache-expiry"


class RedisClient:
    """
    Cache for derived read models. Every key is also recorded in a sorted set
    scored by its expiry time so stale entries can be purged in bulk.
    """

    def __init__(self, redis: Optional[aioredis.Redis] = None):
        self.env = get_env()
        self.url = self.env.redis_url
        self.redis = redis if redis is not None else aioredis.from_url(self.url, decode_responses=True)

    async def set_cached(self, key: str, value: str, ttl: int = 3600) -> None:
        full_key = CACHE_PREFIX + key
        await self.redis.set(full_key, value, ex=ttl)
        await self.redis.zadd(EXPIRY_INDEX, {full_key: int(time.time()) + ttl})

    async def get_cached(self, key: str) -> Optional[str]:
        raw = await self.redis.get(CACHE_PREFIX + key)
        if not raw:
            return None
        return str(raw)

    async def del_cached(self, key: str) -> int:
        full_key = CACHE_PREFIX + key
        await self.redis.zrem(EXPIRY_INDEX, full_key)
        return await self.redis.delete(full_key)

    async def clean_expired(self) -> int:
        """Drop index entries (and any leftover keys) whose expiry has passed. Returns how many."""
        now = int(time.time())
        stale = await self.redis.zrangebyscore(EXPIRY_INDEX, 0, now)
        if not stale:
            return 0
        await self.redis.delete(*stale)
        await self.redis.zremrangebyscore(EXPIRY_INDEX, 0, now)
        return len(stale)

    async def close(self) -> None:
        await self.redis.aclose()
