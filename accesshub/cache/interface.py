"""
Cache backend interface.

Values are JSON-compatible structures (dicts, lists, strings, numbers) so that
any backend can serve them interchangeably.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class CacheBackend(ABC):
    """Storage behind the volatile result cache."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store value under key for ttl_seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop a single key."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Drop every key matching a glob pattern; returns the number removed."""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Backend-specific statistics."""

    async def close(self) -> None:
        return None
