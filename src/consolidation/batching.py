# src/consolidation/batching.py — v1
"""Batch sizing step functions for oracle fan-out."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def similarity_batch_size(pair_count: int) -> int:
    """Pairs per similarity batch; small inputs go out as a single batch."""
    if pair_count <= 10:
        return max(pair_count, 1)
    if pair_count <= 50:
        return 25
    if pair_count <= 200:
        return 50
    return 75


def domain_batch_size(theme_count: int) -> int:
    """Themes per domain classification batch."""
    if theme_count <= 5:
        return max(theme_count, 1)
    if theme_count <= 20:
        return 10
    if theme_count <= 50:
        return 15
    return 20


def dedup_batch_size(sibling_count: int) -> int:
    """Siblings per duplicate-detection batch."""
    if sibling_count < 20:
        return 4
    if sibling_count < 50:
        return 6
    if sibling_count < 100:
        return 8
    return 10


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
