# src/consolidation/similarity_engine.py — v1
"""Pairwise similarity engine — stage 1 of theme consolidation.

Produces a SimilarityRecord for every unordered pair of themes:

  1. Cached pairs are reused, and pairs another request is already judging
     are awaited rather than sent again.
  2. Pairs with no shared files and dissimilar names are scored 0 without
     an oracle call (the only deterministic shortcut).
  3. Remaining pairs are batched and sent to the oracle under a bounded
     concurrency pool, each batch with its own retry budget.
  4. A batch that exhausts retries is replayed pair by pair; a pair that
     still fails gets a "keep separate" default that is not cached.

The returned map always covers every requested pair.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from themetree.cache.pair_cache import PairCache
from themetree.config.settings import Settings
from themetree.consolidation.batching import chunked, similarity_batch_size
from themetree.consolidation.models import SimilarityMetrics
from themetree.core.models import ConsolidatedTheme, SimilarityRecord, make_pair_key
from themetree.core.similarity import file_overlap_matrix, name_similarity_matrix
from themetree.llm.retry import LLMRetryExhausted
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.calls import call_with_retry
from themetree.oracle.models import SimilarityJudgment

logger = logging.getLogger(__name__)

Pair = tuple[ConsolidatedTheme, ConsolidatedTheme]


class PairwiseSimilarityEngine:
    """Compute pairwise similarity records with caching and batching.

    Args:
        oracle: Judgment oracle.
        settings: Thresholds, concurrency and retry budget.
        cache: Pair cache; a fresh TTL cache is created when omitted.
    """

    def __init__(
        self,
        oracle: BaseJudgmentOracle,
        settings: Settings,
        cache: PairCache[SimilarityRecord] | None = None,
    ) -> None:
        self._oracle = oracle
        self._settings = settings
        self.cache: PairCache[SimilarityRecord] = cache or PairCache(
            ttl_s=settings.similarity_cache_ttl_s
        )
        self.metrics = SimilarityMetrics()

    async def compute(
        self, themes: Sequence[ConsolidatedTheme]
    ) -> dict[str, SimilarityRecord]:
        """Return pair key -> SimilarityRecord for every pair of ``themes``."""
        start = time.monotonic()
        self.metrics = SimilarityMetrics(themes=len(themes))
        results: dict[str, SimilarityRecord] = {}

        n = len(themes)
        if n < 2:
            return results

        names = name_similarity_matrix([t.name for t in themes])
        files = file_overlap_matrix([t.affected_files for t in themes])
        pending: list[Pair] = []
        waiting: dict[str, asyncio.Future[SimilarityRecord]] = {}
        seen: set[str] = set()

        for i in range(n):
            for j in range(i + 1, n):
                a, b = themes[i], themes[j]
                key = make_pair_key(a.id, b.id)
                if a.id == b.id or key in seen:
                    continue
                seen.add(key)
                self.metrics.pairs_total += 1

                cached = await self.cache.get(a.id, b.id)
                if cached is not None:
                    self.metrics.cache_hits += 1
                    results[key] = cached.model_copy(update={"source": "cache"})
                    continue

                in_flight = self.cache.in_flight(a.id, b.id)
                if in_flight is not None:
                    self.metrics.in_flight_hits += 1
                    waiting[key] = in_flight
                    continue

                name_score = float(names[i, j])
                file_score = float(files[i, j])
                if file_score == 0.0 and name_score < self._settings.prefilter_name_threshold:
                    record = SimilarityRecord(
                        theme_a=a.id,
                        theme_b=b.id,
                        combined_score=0.0,
                        name_score=name_score,
                        file_score=0.0,
                        should_merge=False,
                        reasoning="No shared files and dissimilar names",
                        source="prefilter",
                    )
                    await self.cache.put(a.id, b.id, record)
                    results[key] = record
                    self.metrics.prefiltered += 1
                    continue

                self.cache.claim(a.id, b.id)
                pending.append((a, b))

        if pending:
            batches = chunked(pending, similarity_batch_size(len(pending)))
            semaphore = asyncio.Semaphore(self._settings.similarity_concurrency)
            logger.info(
                "Similarity: %d pairs → %d oracle batches (%d prefiltered, %d cached)",
                len(pending), len(batches), self.metrics.prefiltered, self.metrics.cache_hits,
            )
            for records in await asyncio.gather(
                *(self._run_batch(batch, semaphore) for batch in batches)
            ):
                results.update(records)

        for key, future in waiting.items():
            results[key] = await asyncio.shield(future)

        self._finish_metrics(results, start)
        return results

    async def compare_pair(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> SimilarityRecord:
        """Judge a single pair, reusing cached or in-flight results."""
        return await self.cache.get_or_compute(
            theme_a.id,
            theme_b.id,
            lambda: self._judge_pair(theme_a, theme_b),
            cache_if=_cacheable,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _judge_pair(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> SimilarityRecord:
        try:
            judgment = await call_with_retry(
                lambda: self._oracle.compare_similarity(theme_a, theme_b),
                operation="compare_similarity",
                max_retries=self._settings.similarity_max_retries,
                base_delay_s=self._settings.retry_base_delay_s,
            )
        except LLMRetryExhausted as exc:
            logger.warning(
                "Similarity for %s / %s unavailable (%s); keeping separate",
                theme_a.id, theme_b.id, exc.error_type,
            )
            self.metrics.keep_separate_defaults += 1
            return _keep_separate(theme_a, theme_b, str(exc.last_error))
        return _to_record(theme_a, theme_b, judgment)

    async def _run_batch(
        self, batch: list[Pair], semaphore: asyncio.Semaphore
    ) -> dict[str, SimilarityRecord]:
        """Judge a batch of claimed pairs and resolve each claim."""
        records: dict[str, SimilarityRecord] = {}
        try:
            async with semaphore:
                self.metrics.oracle_batches += 1
                try:
                    judgments = await call_with_retry(
                        lambda: self._oracle.compare_similarity_batch(batch),
                        operation="compare_similarity_batch",
                        max_retries=self._settings.similarity_max_retries,
                        base_delay_s=self._settings.retry_base_delay_s,
                    )
                except LLMRetryExhausted as exc:
                    logger.warning(
                        "Similarity batch of %d pairs failed (%s); retrying pairs individually",
                        len(batch), exc.error_type,
                    )
                    self.metrics.batch_fallbacks += 1
                    judgments = {}

                missing: list[Pair] = []
                for index, (a, b) in enumerate(batch):
                    judgment = judgments.get(index)
                    if judgment is None:
                        missing.append((a, b))
                        continue
                    record = _to_record(a, b, judgment)
                    await self.cache.resolve(a.id, b.id, record)
                    records[record.pair_key] = record

                # Claims are held here, so missing pairs skip get_or_compute.
                for a, b in missing:
                    record = await self._judge_pair(a, b)
                    await self.cache.resolve(a.id, b.id, record, store=_cacheable(record))
                    records[record.pair_key] = record
        except BaseException as exc:
            for a, b in batch:
                if make_pair_key(a.id, b.id) not in records:
                    self.cache.abandon(a.id, b.id, exc)
            raise

        return records

    def _finish_metrics(
        self, results: dict[str, SimilarityRecord], start: float
    ) -> None:
        threshold = self._settings.similarity_threshold
        self.metrics.pairs_analyzed = len(results)
        self.metrics.merges_decided = sum(
            1 for r in results.values() if r.combined_score >= threshold
        )
        if results:
            self.metrics.merge_rate = round(
                100.0 * self.metrics.merges_decided / len(results), 2
            )
        self.metrics.processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Similarity: %d pairs analyzed, %d above threshold %.2f (%.1f%%)",
            self.metrics.pairs_analyzed, self.metrics.merges_decided,
            threshold, self.metrics.merge_rate,
        )


def _to_record(
    a: ConsolidatedTheme, b: ConsolidatedTheme, judgment: SimilarityJudgment
) -> SimilarityRecord:
    return SimilarityRecord(
        theme_a=a.id,
        theme_b=b.id,
        combined_score=judgment.combined_score,
        name_score=judgment.name_score,
        description_score=judgment.description_score,
        file_score=judgment.file_score,
        business_score=judgment.business_score,
        should_merge=judgment.should_merge,
        reasoning=judgment.reasoning,
        source="oracle",
    )


def _keep_separate(
    a: ConsolidatedTheme, b: ConsolidatedTheme, reason: str
) -> SimilarityRecord:
    return SimilarityRecord(
        theme_a=a.id,
        theme_b=b.id,
        combined_score=0.0,
        should_merge=False,
        reasoning=f"Oracle unavailable: {reason}",
        source="fallback",
    )


def _cacheable(record: SimilarityRecord) -> bool:
    return record.source != "fallback"
