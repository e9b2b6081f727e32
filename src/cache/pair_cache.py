# src/cache/pair_cache.py — v1
"""Symmetric pair cache with in-flight request coalescing.

Values are keyed by an unordered pair of theme ids, so (A, B) and (B, A)
share one entry. Concurrent ``get_or_compute`` calls for the same pair await
a single shared task instead of each invoking the oracle. Batch callers can
claim a pair up front and resolve it later, so single-pair and batch
requests for the same pair also share one result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from themetree.cache.base_cache_store import BaseCacheStore
from themetree.cache.memory_store import MemoryCacheStore
from themetree.cache.models import CacheEntry, CacheStats
from themetree.core.models import make_pair_key

logger = logging.getLogger(__name__)

V = TypeVar("V")


class PairCache(Generic[V]):
    """Cache of pairwise judgments.

    Args:
        store: Backing store. Defaults to a MemoryCacheStore with ``ttl_s``.
        ttl_s: TTL used when no store is given.
    """

    def __init__(
        self,
        store: BaseCacheStore | None = None,
        ttl_s: float = 3600.0,
    ) -> None:
        self._store = store or MemoryCacheStore(ttl_s=ttl_s)
        self._in_flight: dict[str, asyncio.Future[V]] = {}
        self._coalesced = 0

    @staticmethod
    def key(id_a: str, id_b: str) -> str:
        return make_pair_key(id_a, id_b)

    async def get(self, id_a: str, id_b: str) -> V | None:
        entry = await self._store.get(self.key(id_a, id_b))
        return None if entry is None else entry.value

    async def put(self, id_a: str, id_b: str, value: V) -> None:
        key = self.key(id_a, id_b)
        await self._store.put(
            key, CacheEntry(key=key, value=value, created_at=self._now())
        )

    async def get_or_compute(
        self,
        id_a: str,
        id_b: str,
        compute: Callable[[], Awaitable[V]],
        cache_if: Callable[[V], bool] | None = None,
    ) -> V:
        """Return the cached value or compute it once for all concurrent callers.

        Args:
            id_a: First theme id.
            id_b: Second theme id.
            compute: Coroutine factory producing the value on a miss.
            cache_if: Predicate deciding whether a computed value is stored.
                Defaults to storing every value.
        """
        cached = await self.get(id_a, id_b)
        if cached is not None:
            return cached

        key = self.key(id_a, id_b)
        pending = self._in_flight.get(key)
        if pending is not None:
            self._coalesced += 1
            logger.debug("Coalescing in-flight request for %s", key)
            return await asyncio.shield(pending)

        task: asyncio.Task[V] = asyncio.ensure_future(compute())
        self._in_flight[key] = task
        try:
            value = await task
        finally:
            self._in_flight.pop(key, None)

        if cache_if is None or cache_if(value):
            await self.put(id_a, id_b, value)
        return value

    def in_flight(self, id_a: str, id_b: str) -> asyncio.Future[V] | None:
        """Pending result for the pair, counted as coalesced when present."""
        pending = self._in_flight.get(self.key(id_a, id_b))
        if pending is not None:
            self._coalesced += 1
        return pending

    def claim(self, id_a: str, id_b: str) -> asyncio.Future[V]:
        """Register the pair as in flight until ``resolve`` or ``abandon``."""
        key = self.key(id_a, id_b)
        if key in self._in_flight:
            raise KeyError(f"pair {key} is already in flight")
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        return future

    async def resolve(self, id_a: str, id_b: str, value: V, store: bool = True) -> None:
        """Publish a claimed pair's value to its waiters and optionally cache it."""
        if store:
            await self.put(id_a, id_b, value)
        future = self._in_flight.pop(self.key(id_a, id_b), None)
        if future is not None and not future.done():
            future.set_result(value)

    def abandon(self, id_a: str, id_b: str, error: BaseException) -> None:
        """Fail a claimed pair so its waiters do not hang."""
        future = self._in_flight.pop(self.key(id_a, id_b), None)
        if future is None or future.done():
            return
        if isinstance(error, asyncio.CancelledError):
            future.cancel()
            return
        future.set_exception(error)
        # Mark retrieved; the claimant re-raises the error itself.
        future.exception()

    async def clear(self) -> None:
        await self._store.clear()

    def stats(self) -> CacheStats:
        stats = self._store.stats()
        return stats.model_copy(update={"coalesced": self._coalesced})

    def _now(self) -> float:
        return self._store.now()
