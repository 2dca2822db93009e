"""
Volatile result cache.

One CacheManager is built per process and handed to every component that
caches. The backend is chosen once at startup: Redis when configured and
reachable, otherwise the bounded in-process map. Callers never see which one
serves them, and a key is never split across backends.
"""

import hashlib
import logging
from typing import Any, Dict, Optional

import redis

from .interface import CacheBackend
from .memory import MemoryCacheBackend
from .redis_impl import RedisCacheBackend

logger = logging.getLogger(__name__)


class TTL:
    """Time-to-live tiers, in seconds."""
    SHORT = 300        # resolved permissions, local-session auth contexts
    MEDIUM = 1800      # remote-validated token contexts, user lookups
    LONG = 7200
    VERY_LONG = 14400


class CacheKeys:
    @staticmethod
    def user_permissions(user_id: str, system_id: Optional[str] = None) -> str:
        return f"user_permissions:{user_id}:{system_id or 'all'}"

    @staticmethod
    def user_permissions_pattern(user_id: Optional[str] = None) -> str:
        return f"user_permissions:{user_id}:*" if user_id else "user_permissions:*"

    @staticmethod
    def auth_token(token: str) -> str:
        """Token digest -> owning user id; the context itself lives under token_context."""
        return f"auth_token:{hashlib.sha256(token.encode()).hexdigest()}"

    @staticmethod
    def token_context(user_id: str, token: str) -> str:
        return f"token_context:{user_id}:{hashlib.sha256(token.encode()).hexdigest()}"

    @staticmethod
    def token_context_pattern(user_id: str) -> str:
        return f"token_context:{user_id}:*"

    @staticmethod
    def identity_user(user_id: str, system_id: str) -> str:
        return f"identity_user:{user_id}:{system_id}"

    @staticmethod
    def identity_user_pattern(user_id: str) -> str:
        return f"identity_user:{user_id}:*"

    @staticmethod
    def auth_context(user_id: str, session_id: str) -> str:
        return f"auth_context:{user_id}:{session_id}"

    @staticmethod
    def auth_context_pattern(user_id: str) -> str:
        return f"auth_context:{user_id}:*"


class CacheManager:
    def __init__(self, backend: Optional[CacheBackend] = None, max_entries: int = 1000):
        self.backend = backend or MemoryCacheBackend(max_entries=max_entries)
        self.hits = 0
        self.misses = 0

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def connect(self, redis_url: Optional[str]) -> CacheBackend:
        """Switch to Redis when it answers a ping; keep the in-process map otherwise."""
        if not redis_url:
            logger.info("Cache: REDIS_URL not set, using in-process cache")
            return self.backend
        candidate = RedisCacheBackend(redis_url)
        try:
            await candidate.ping()
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Cache: Redis unavailable at {redis_url} ({e}), using in-process cache")
            await candidate.close()
            return self.backend
        previous = self.backend
        self.backend = candidate
        await previous.close()
        logger.info(f"Cache: using Redis at {redis_url}")
        return self.backend

    async def get(self, key: str) -> Optional[Any]:
        value = await self.backend.get(key)
        if value is None:
            self.misses += 1
            logger.debug(f"Cache miss: {key}")
        else:
            self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int = TTL.SHORT) -> None:
        await self.backend.set(key, value, ttl_seconds)

    async def invalidate(self, key: str) -> None:
        await self.backend.delete(key)

    async def invalidate_pattern(self, pattern: str) -> int:
        removed = await self.backend.delete_pattern(pattern)
        logger.debug(f"Invalidated {removed} cache entries matching {pattern}")
        return removed

    async def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
            **(await self.backend.stats()),
        }

    async def close(self) -> None:
        await self.backend.close()
