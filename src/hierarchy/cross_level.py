# src/hierarchy/cross_level.py — v1
"""Cross-level deduplication over a finished theme tree.

Themes at adjacent levels (or the same level under different parents) can
describe the same change after expansion. Candidate pairs are pruned with
cheap heuristics before any oracle call; surviving pairs are judged under a
bounded semaphore with a TTL cache. Confirmed duplicates are folded into the
more general node and the tree is rebuilt without mutating the input.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Sequence

from themetree.cache.pair_cache import PairCache
from themetree.config.settings import Settings
from themetree.core.code import count_added_lines, pool_snippets
from themetree.core.models import ConsolidatedTheme
from themetree.core.similarity import file_overlap, name_similarity
from themetree.core.tree import flatten, ordered_union
from themetree.hierarchy.models import (
    CrossLevelMerge,
    CrossLevelMetrics,
    CrossLevelResult,
)
from themetree.llm.retry import LLMRetryExhausted
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.calls import call_with_retry
from themetree.oracle.models import CONSERVATIVE_CROSS_LEVEL, CrossLevelJudgment

logger = logging.getLogger(__name__)

# First match wins.
_AREA_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("ui", re.compile(r"\b(ui|interface|component)")),
    ("api", re.compile(r"\b(api|endpoint|service)")),
    ("auth", re.compile(r"\b(auth|login|security)")),
    ("test", re.compile(r"\b(test|spec|mock)")),
    ("config", re.compile(r"\b(config|setting|env)")),
    ("docs", re.compile(r"\b(doc|readme|comment)")),
    ("feature", re.compile(r"\b(feature|functionality|capabilit)")),
    ("logic", re.compile(r"\b(logic|algorithm|calculat|rule)")),
]
_INCOMPATIBLE_AREAS = {
    frozenset(("ui", "api")),
    frozenset(("auth", "docs")),
    frozenset(("test", "feature")),
    frozenset(("config", "logic")),
}

_VERB_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("add", re.compile(r"\b(add|create|new)")),
    ("remove", re.compile(r"\b(remov|delet|drop)")),
    ("fix", re.compile(r"\b(fix|bug|error)")),
    ("update", re.compile(r"\b(updat|modif|chang)")),
]
_INCOMPATIBLE_VERBS = {frozenset(("add", "remove")), frozenset(("add", "fix"))}


def infer_area(theme: ConsolidatedTheme) -> str:
    text = f"{theme.name} {theme.description}".lower()
    for area, pattern in _AREA_PATTERNS:
        if pattern.search(text):
            return area
    return "general"


def infer_verb(theme: ConsolidatedTheme) -> str:
    text = f"{theme.name} {theme.description}".lower()
    for verb, pattern in _VERB_PATTERNS:
        if pattern.search(text):
            return verb
    return "general"


def theme_size(theme: ConsolidatedTheme) -> int:
    """Files touched plus lines added."""
    return len(theme.affected_files) + count_added_lines(theme.code_snippets)


def is_structural_candidate(a: ConsolidatedTheme, b: ConsolidatedTheme) -> bool:
    """Adjacent levels, excluding same-parent siblings and parent-child pairs."""
    if a.level == b.level and a.parent_id == b.parent_id:
        return False
    if a.parent_id == b.id or b.parent_id == a.id:
        return False
    return abs(a.level - b.level) <= 1


class CrossLevelDeduplicator:
    """Find and fold duplicate themes that live at different tree positions.

    Args:
        oracle: Judgment oracle.
        settings: Thresholds, concurrency and cache TTL.
        cache: Pair cache for judgments; a fresh TTL cache when omitted.
    """

    def __init__(
        self,
        oracle: BaseJudgmentOracle,
        settings: Settings,
        cache: PairCache[CrossLevelJudgment] | None = None,
    ) -> None:
        self._oracle = oracle
        self._settings = settings
        self.cache: PairCache[CrossLevelJudgment] = cache or PairCache(
            ttl_s=settings.cross_level_cache_ttl_s
        )

    def passes_prefilter(self, a: ConsolidatedTheme, b: ConsolidatedTheme) -> bool:
        """False when heuristics say the pair cannot be a duplicate."""
        if file_overlap(a.affected_files, b.affected_files) == 0.0:
            if name_similarity(a.name, b.name) < self._settings.cross_level_name_threshold:
                return False
        if frozenset((infer_area(a), infer_area(b))) in _INCOMPATIBLE_AREAS:
            return False
        size_a, size_b = theme_size(a), theme_size(b)
        if size_a and size_b:
            if max(size_a, size_b) / min(size_a, size_b) > self._settings.cross_level_size_ratio:
                return False
        if frozenset((infer_verb(a), infer_verb(b))) in _INCOMPATIBLE_VERBS:
            return False
        return True

    def should_merge(self, judgment: CrossLevelJudgment) -> bool:
        if judgment.similarity_score <= self._settings.cross_level_threshold:
            return False
        if judgment.relationship == "duplicate":
            return True
        return judgment.relationship == "overlap" and self._settings.allow_overlap_merging

    async def deduplicate(
        self, roots: Sequence[ConsolidatedTheme]
    ) -> CrossLevelResult:
        """Judge candidate pairs and return the rebuilt tree."""
        start = time.monotonic()
        nodes = flatten(roots)
        metrics = CrossLevelMetrics(original_count=len(nodes), deduplicated_count=len(nodes))

        if len(nodes) < self._settings.min_themes_for_cross_level_dedup:
            logger.info(
                "Cross-level dedup skipped: %d themes (minimum %d)",
                len(nodes), self._settings.min_themes_for_cross_level_dedup,
            )
            metrics.skipped = True
            return CrossLevelResult(themes=list(roots), metrics=metrics)

        structural = [
            (a, b)
            for i, a in enumerate(nodes)
            for b in nodes[i + 1:]
            if is_structural_candidate(a, b)
        ]
        pairs = [(a, b) for a, b in structural if self.passes_prefilter(a, b)]
        metrics.candidate_pairs = len(structural)
        metrics.filtered_pairs = len(structural) - len(pairs)
        metrics.comparisons_generated = len(pairs)
        if structural:
            metrics.filtering_reduction_pct = round(
                100.0 * metrics.filtered_pairs / len(structural), 2
            )

        semaphore = asyncio.Semaphore(self._settings.cross_level_concurrency)
        judgments = await asyncio.gather(
            *(self._judge(a, b, semaphore) for a, b in pairs)
        )
        metrics.failed_comparisons = sum(
            1 for j in judgments if j is CONSERVATIVE_CROSS_LEVEL
        )

        order = {node.id: index for index, node in enumerate(nodes)}
        merges: list[CrossLevelMerge] = []
        touched: set[str] = set()
        for (a, b), judgment in zip(pairs, judgments):
            if not self.should_merge(judgment):
                continue
            if a.id in touched or b.id in touched:
                continue
            target, source = _pick_target(a, b, order)
            touched.update((target.id, source.id))
            merges.append(
                CrossLevelMerge(
                    target_id=target.id,
                    source_id=source.id,
                    target_level=target.level,
                    source_level=source.level,
                    similarity_score=judgment.similarity_score,
                    relationship=judgment.relationship,
                    reasoning=judgment.reasoning,
                )
            )
            if judgment.relationship == "duplicate":
                metrics.duplicates_removed += 1
            else:
                metrics.overlaps_resolved += 1

        new_roots = apply_merges(roots, merges) if merges else list(roots)
        metrics.deduplicated_count = len(flatten(new_roots))
        metrics.processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Cross-level dedup: %d pairs, %d pre-filtered, %d judged, %d merged (%d -> %d themes)",
            metrics.candidate_pairs, metrics.filtered_pairs,
            metrics.comparisons_generated, len(merges),
            metrics.original_count, metrics.deduplicated_count,
        )
        return CrossLevelResult(themes=new_roots, merges=merges, metrics=metrics)

    async def _judge(
        self,
        a: ConsolidatedTheme,
        b: ConsolidatedTheme,
        semaphore: asyncio.Semaphore,
    ) -> CrossLevelJudgment:
        async def compute() -> CrossLevelJudgment:
            async with semaphore:
                try:
                    return await call_with_retry(
                        lambda: self._oracle.compare_cross_level(a, b),
                        operation="compare_cross_level",
                        max_retries=self._settings.cross_level_max_retries,
                        base_delay_s=self._settings.retry_base_delay_s,
                    )
                except LLMRetryExhausted as exc:
                    logger.warning(
                        "Cross-level comparison %s/%s failed (%s); keeping separate",
                        a.id, b.id, exc.error_type,
                    )
                    return CONSERVATIVE_CROSS_LEVEL

        return await self.cache.get_or_compute(
            a.id, b.id, compute,
            cache_if=lambda j: j is not CONSERVATIVE_CROSS_LEVEL,
        )


def _pick_target(
    a: ConsolidatedTheme,
    b: ConsolidatedTheme,
    order: dict[str, int],
) -> tuple[ConsolidatedTheme, ConsolidatedTheme]:
    """(target, source): the more general node absorbs the other."""
    if a.level != b.level:
        return (a, b) if a.level < b.level else (b, a)
    return (a, b) if order[a.id] <= order[b.id] else (b, a)


def absorb(target: ConsolidatedTheme, source: ConsolidatedTheme) -> ConsolidatedTheme:
    """Fold ``source``'s content into ``target``; children are left to the caller."""
    return target.model_copy(
        update={
            "description": f"{target.description} {source.description}".strip(),
            "business_impact": f"{target.business_impact} {source.business_impact}".strip(),
            "affected_files": ordered_union([target.affected_files, source.affected_files]),
            "code_snippets": pool_snippets([target, source]),
            "confidence": max(target.confidence, source.confidence),
            "source_themes": [*target.source_themes, *source.source_themes],
            "consolidation_method": "merge",
        }
    )


def apply_merges(
    roots: Sequence[ConsolidatedTheme],
    merges: Sequence[CrossLevelMerge],
) -> list[ConsolidatedTheme]:
    """Rebuild the tree with every source folded into its target.

    A source's children move under its target. Targets are never
    descendants of their sources, so the rebuild cannot create a cycle.
    """
    by_id = {node.id: node for node in flatten(roots)}
    absorbed = {m.source_id: m.target_id for m in merges}
    adopted: dict[str, list[ConsolidatedTheme]] = {}
    for m in merges:
        adopted.setdefault(m.target_id, []).append(by_id[m.source_id])

    def rebuild(
        node: ConsolidatedTheme, level: int, parent_id: str | None
    ) -> ConsolidatedTheme | None:
        if node.id in absorbed:
            return None
        for source in adopted.get(node.id, []):
            node = absorb(node, source)
        originals = list(by_id[node.id].child_themes)
        for source in adopted.get(node.id, []):
            originals.extend(source.child_themes)
        children = [
            built
            for child in originals
            if (built := rebuild(child, level + 1, node.id)) is not None
        ]
        return node.model_copy(
            update={"level": level, "parent_id": parent_id, "child_themes": children}
        )

    result: list[ConsolidatedTheme] = []
    for root in roots:
        built = rebuild(root, 0, None)
        if built is not None:
            result.append(built)
    return result
