"""
Redis-based cache backend.

Shared across processes. Redis failures are logged and reported as cache
misses so callers behave exactly as with an empty cache.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis

from .interface import CacheBackend

logger = logging.getLogger(__name__)


class RedisCacheBackend(CacheBackend):
    name = "redis"

    def __init__(self, redis_url: str, client: Optional[aioredis.Redis] = None):
        self.redis_url = redis_url
        self.client = client or aioredis.from_url(redis_url, decode_responses=True)

    async def ping(self) -> None:
        """Raises redis.RedisError when the server is unreachable."""
        await self.client.ping()

    async def get(self, key: str) -> Optional[Any]:
        try:
            cached = await self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis get failed: {e}")
            return None
        if cached is None:
            return None
        return json.loads(cached)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.client.setex(key, ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.error(f"Redis set failed: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis delete failed: {e}")

    async def delete_pattern(self, pattern: str) -> int:
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if keys:
                await self.client.delete(*keys)
            return len(keys)
        except redis.RedisError as e:
            logger.error(f"Redis pattern delete failed: {e}")
            return 0

    async def stats(self) -> Dict[str, Any]:
        try:
            info = await self.client.info("stats")
            size = await self.client.dbsize()
        except redis.RedisError as e:
            logger.error(f"Redis stats failed: {e}")
            return {"backend": self.name, "url": self.redis_url, "available": False}
        return {
            "backend": self.name,
            "url": self.redis_url,
            "size": size,
            "keyspace_hits": info.get("keyspace_hits", 0),
            "keyspace_misses": info.get("keyspace_misses", 0),
        }

    async def close(self) -> None:
        await self.client.aclose()
