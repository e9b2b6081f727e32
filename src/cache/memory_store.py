# src/cache/memory_store.py — v1
"""Process-local TTL cache store.

Entries live in a dict and expire ``ttl_s`` seconds after insertion.
Expired entries are removed lazily on read. Nothing is persisted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from themetree.cache.base_cache_store import BaseCacheStore
from themetree.cache.models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)


class MemoryCacheStore(BaseCacheStore):
    """In-memory store with a fixed time-to-live.

    Args:
        ttl_s: Entry lifetime in seconds.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._expired = 0

    def now(self) -> float:
        return self._clock()

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() - entry.created_at > self._ttl_s:
            del self._entries[key]
            self._expired += 1
            self._misses += 1
            logger.debug("Cache entry expired: %s", key)
            return None
        self._hits += 1
        return entry

    async def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            expired=self._expired,
            ttl_s=self._ttl_s,
        )
