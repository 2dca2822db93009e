from .interface import CacheBackend
from .manager import TTL, CacheKeys, CacheManager
from .memory import MemoryCacheBackend
from .redis_impl import RedisCacheBackend

__all__ = [
    "CacheBackend",
    "CacheKeys",
    "CacheManager",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "TTL",
]
