# src/pipeline/models.py — v1
"""Pipeline result and run-level metrics."""

from __future__ import annotations

from pydantic import BaseModel, Field

from themetree.consolidation.models import HierarchyMetrics, SimilarityMetrics
from themetree.core.models import ConsolidatedTheme
from themetree.expansion.models import DedupMetrics, ExpansionMetrics
from themetree.hierarchy.models import CrossLevelMetrics, IntegrityReport
from themetree.tracking.models import OperationStats


class PipelineMetrics(BaseModel):
    """Effectiveness counters for one consolidation run."""

    run_id: str = ""
    input_themes: int = 0
    output_roots: int = 0
    output_nodes: int = 0
    max_depth: int = 0
    similarity: SimilarityMetrics = Field(default_factory=SimilarityMetrics)
    merge_groups_formed: int = 0
    themes_after_merge: int = 0
    naming_fallbacks: int = 0
    hierarchy: HierarchyMetrics = Field(default_factory=HierarchyMetrics)
    expansion: ExpansionMetrics | None = None
    dedup: DedupMetrics | None = None
    cross_level: CrossLevelMetrics | None = None
    oracle_calls: int = 0
    oracle_failures: int = 0
    oracle_calls_by_operation: dict[str, OperationStats] = Field(default_factory=dict)
    stage_timings_ms: dict[str, int] = Field(default_factory=dict)
    processing_time_ms: int = 0

    @property
    def domain_parents_created(self) -> int:
        return self.hierarchy.parents_created


class PipelineResult(BaseModel):
    """Root themes of the final tree with metrics and integrity report."""

    themes: list[ConsolidatedTheme] = Field(default_factory=list)
    metrics: PipelineMetrics = Field(default_factory=PipelineMetrics)
    integrity: IntegrityReport = Field(default_factory=IntegrityReport)
