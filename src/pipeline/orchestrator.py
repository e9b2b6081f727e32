# src/pipeline/orchestrator.py — v1
"""Theme pipeline orchestrator.

Drives the full run over a flat list of themes:
  Stage 1: Pairwise similarity (cache, pre-filter, batched oracle calls)
  Stage 2: Merge groups and merged nodes
  Stage 3: Domain hierarchy (level-0 parents)
  Stage 4: Recursive expansion with sibling dedup (optional)
  Stage 5: Cross-level dedup (optional)
  Stage 6: Integrity validation

Every oracle failure degrades inside its stage; only an
OracleConfigurationError escapes.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone

from themetree.config.settings import Settings
from themetree.consolidation.domain_hierarchy import DomainHierarchyBuilder
from themetree.consolidation.merge_groups import build_merge_groups
from themetree.consolidation.similarity_engine import PairwiseSimilarityEngine
from themetree.consolidation.theme_merger import ThemeMerger
from themetree.core.models import ConsolidatedTheme, Theme
from themetree.core.tree import count_nodes, max_level
from themetree.expansion.engine import ExpansionEngine
from themetree.hierarchy.cross_level import CrossLevelDeduplicator
from themetree.hierarchy.integrity import validate_tree
from themetree.logging.context import clear_context, set_run_context, set_stage
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.pipeline.models import PipelineMetrics, PipelineResult
from themetree.tracking.call_logger import CallLogger
from themetree.tracking.tracked_oracle import TrackedOracle

logger = logging.getLogger(__name__)


class ThemePipeline:
    """Consolidate flat themes into an expanded, validated hierarchy.

    Args:
        oracle: Judgment oracle. Wrapped so every call is tracked.
        settings: Frozen run configuration.
        call_logger: Call tracker; a fresh one per pipeline when omitted.
    """

    def __init__(
        self,
        oracle: BaseJudgmentOracle,
        settings: Settings,
        call_logger: CallLogger | None = None,
    ) -> None:
        self._settings = settings
        self.call_logger = call_logger or CallLogger()
        self._oracle = TrackedOracle(oracle, self.call_logger)

    async def run(self, themes: Sequence[Theme]) -> PipelineResult:
        """Run every stage and return the final tree."""
        start = time.monotonic()
        run_id = _generate_run_id()
        metrics = PipelineMetrics(run_id=run_id, input_themes=len(themes))
        set_run_context(run_id)
        logger.info("Starting consolidation run %s: %d themes", run_id, len(themes))

        try:
            if not themes:
                logger.info("No themes to consolidate")
                return PipelineResult(metrics=metrics)

            nodes = [
                t if isinstance(t, ConsolidatedTheme) else ConsolidatedTheme.from_theme(t)
                for t in themes
            ]

            with self._stage("similarity", metrics):
                engine = PairwiseSimilarityEngine(self._oracle, self._settings)
                similarities = await engine.compute(nodes)
                metrics.similarity = engine.metrics

            with self._stage("merge", metrics):
                groups = build_merge_groups(
                    nodes, similarities, self._settings.similarity_threshold
                )
                merger = ThemeMerger(self._oracle)
                merged = await merger.merge_all(groups)
                metrics.merge_groups_formed = sum(1 for g in groups if len(g) > 1)
                metrics.themes_after_merge = len(merged)

            with self._stage("hierarchy", metrics):
                builder = DomainHierarchyBuilder(self._oracle, self._settings)
                roots = await builder.build(merged)
                metrics.hierarchy = builder.metrics

            if self._settings.expansion_enabled:
                with self._stage("expansion", metrics):
                    expander = ExpansionEngine(self._oracle, self._settings)
                    roots = await expander.expand_all(roots)
                    metrics.expansion = expander.metrics
                    metrics.dedup = expander.deduplicator.metrics
            else:
                logger.info("Expansion disabled; keeping domain hierarchy as-is")

            if self._settings.cross_level_dedup_enabled:
                with self._stage("cross_level", metrics):
                    cross = CrossLevelDeduplicator(self._oracle, self._settings)
                    outcome = await cross.deduplicate(roots)
                    roots = outcome.themes
                    metrics.cross_level = outcome.metrics

            with self._stage("validation", metrics):
                integrity = validate_tree(roots)

            metrics.naming_fallbacks = merger.naming_fallbacks
            metrics.output_roots = len(roots)
            metrics.output_nodes = count_nodes(roots)
            metrics.max_depth = max_level(roots)
            metrics.oracle_calls = self.call_logger.total_calls
            metrics.oracle_failures = self.call_logger.failed_calls
            metrics.oracle_calls_by_operation = self.call_logger.by_operation()
            metrics.processing_time_ms = int((time.monotonic() - start) * 1000)

            logger.info(
                "Consolidation complete: %d themes -> %d roots, %d nodes, "
                "depth %d, %d oracle calls (%d failed), %d ms",
                metrics.input_themes, metrics.output_roots, metrics.output_nodes,
                metrics.max_depth, metrics.oracle_calls, metrics.oracle_failures,
                metrics.processing_time_ms,
            )
            return PipelineResult(themes=roots, metrics=metrics, integrity=integrity)
        finally:
            clear_context()

    @contextmanager
    def _stage(self, name: str, metrics: PipelineMetrics) -> Iterator[None]:
        """Scope logs to ``name`` and record its duration."""
        set_stage(name)
        started = time.monotonic()
        try:
            yield
        finally:
            metrics.stage_timings_ms[name] = int((time.monotonic() - started) * 1000)
            logger.debug("Stage %s took %d ms", name, metrics.stage_timings_ms[name])
            set_stage(None)


def _generate_run_id() -> str:
    """Run ID: yyyymmdd_hhmmss_{uuid4_short}."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"
