# src/consolidation/models.py — v1
"""Effectiveness metrics for the consolidation stages."""

from __future__ import annotations

from pydantic import BaseModel


class SimilarityMetrics(BaseModel):
    """Counters for one pairwise similarity run."""

    themes: int = 0
    pairs_total: int = 0
    pairs_analyzed: int = 0
    prefiltered: int = 0
    cache_hits: int = 0
    in_flight_hits: int = 0
    oracle_batches: int = 0
    batch_fallbacks: int = 0
    keep_separate_defaults: int = 0
    merges_decided: int = 0
    merge_rate: float = 0.0
    processing_time_ms: int = 0


class HierarchyMetrics(BaseModel):
    """Counters for one domain hierarchy run."""

    themes_classified: int = 0
    oracle_classified: int = 0
    heuristic_classified: int = 0
    domains: int = 0
    parents_created: int = 0
    standalone_roots: int = 0
    processing_time_ms: int = 0
