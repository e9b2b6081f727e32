# src/cache/models.py — v1
"""Cache domain models: CacheEntry, CacheStats."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """Single cached value with its insertion time (monotonic seconds)."""

    key: str
    value: Any
    created_at: float


class CacheStats(BaseModel):
    """Point-in-time cache counters."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    expired: int = 0
    coalesced: int = 0
    ttl_s: float = 0.0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0
