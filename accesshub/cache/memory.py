"""
In-process cache backend.

Entries carry a wall-clock expiry. Expired entries are dropped when read, and
the whole map is swept for expired entries whenever it grows past
max_entries. Live entries are never evicted early.
"""

import copy
import fnmatch
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .interface import CacheBackend

logger = logging.getLogger(__name__)


class MemoryCacheBackend(CacheBackend):
    name = "memory"

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (copy.deepcopy(value), self._clock() + ttl_seconds)
        if len(self._entries) > self.max_entries:
            self._sweep()

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        matching = [k for k in list(self._entries) if fnmatch.fnmatchcase(k, pattern)]
        for key in matching:
            self._entries.pop(key, None)
        return len(matching)

    async def stats(self) -> Dict[str, Any]:
        return {"backend": self.name, "size": len(self._entries), "max_entries": self.max_entries}

    def _sweep(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expires_at) in list(self._entries.items()) if now >= expires_at]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
