# src/expansion/models.py — v1
"""Effectiveness metrics for recursive expansion and sibling deduplication."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ExpansionFailure(BaseModel):
    """A node whose expansion raised and was kept un-expanded."""

    theme_id: str
    theme_name: str
    error_type: str
    message: str


class ExpansionMetrics(BaseModel):
    """Counters for one expansion run."""

    themes_evaluated: int = 0
    themes_expanded: int = 0
    expansion_rate: float = 0.0
    atomic_themes_identified: int = 0
    children_created: int = 0
    max_depth_reached: int = 0
    failed_expansions: int = 0
    stop_reasons: dict[str, int] = Field(default_factory=dict)
    failures: list[ExpansionFailure] = Field(default_factory=list)
    processing_time_ms: int = 0


class DedupMetrics(BaseModel):
    """Counters accumulated across every sibling set deduplicated in a run."""

    sibling_sets: int = 0
    skipped_sets: int = 0
    batches: int = 0
    failed_batches: int = 0
    first_pass_merges: int = 0
    second_pass_runs: int = 0
    second_pass_merges: int = 0
    themes_removed: int = 0
