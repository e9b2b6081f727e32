# src/cache/base_cache_store.py — v1
"""Abstract cache store interface."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

from themetree.cache.models import CacheEntry, CacheStats


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve a live entry; expired entries are dropped and reported as misses."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store cache entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove cache entry."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Current counters."""

    def now(self) -> float:
        """Clock used to timestamp entries."""
        return time.monotonic()
