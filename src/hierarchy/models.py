# src/hierarchy/models.py — v1
"""Cross-level deduplication results and tree integrity reports."""

from __future__ import annotations

from pydantic import BaseModel, Field

from themetree.core.models import ConsolidatedTheme
from themetree.oracle.models import RelationshipType


class IntegrityIssue(BaseModel):
    """One structural problem found in a theme tree."""

    kind: str
    theme_id: str
    message: str


class IntegrityReport(BaseModel):
    """Outcome of validate_tree(). Issues are reported, never repaired."""

    is_valid: bool = True
    total_nodes: int = 0
    issues: list[IntegrityIssue] = Field(default_factory=list)
    warnings: list[IntegrityIssue] = Field(default_factory=list)
    orphaned_ids: list[str] = Field(default_factory=list)
    circular_ids: list[str] = Field(default_factory=list)
    level_inconsistencies: list[str] = Field(default_factory=list)
    duplicate_ids: list[str] = Field(default_factory=list)


class CrossLevelMerge(BaseModel):
    """A source node absorbed into a target node elsewhere in the tree."""

    target_id: str
    source_id: str
    target_level: int
    source_level: int
    similarity_score: float
    relationship: RelationshipType
    reasoning: str = ""


class CrossLevelMetrics(BaseModel):
    original_count: int = 0
    deduplicated_count: int = 0
    candidate_pairs: int = 0
    filtered_pairs: int = 0
    comparisons_generated: int = 0
    failed_comparisons: int = 0
    duplicates_removed: int = 0
    overlaps_resolved: int = 0
    filtering_reduction_pct: float = 0.0
    skipped: bool = False
    processing_time_ms: int = 0


class CrossLevelResult(BaseModel):
    """New roots plus what cross-level dedup did to get there."""

    themes: list[ConsolidatedTheme]
    merges: list[CrossLevelMerge] = Field(default_factory=list)
    metrics: CrossLevelMetrics = Field(default_factory=CrossLevelMetrics)
