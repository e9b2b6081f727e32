# src/tracking/tracked_oracle.py — v1
"""Oracle decorator that records every call in a CallLogger."""

from __future__ import annotations

import time
from collections.abc import Awaitable

from themetree.core.models import ConsolidatedTheme, ExpansionDecision
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.models import (
    CrossLevelJudgment,
    DomainClassification,
    DuplicateGroup,
    Failed,
    OracleResult,
    SimilarityJudgment,
    ThemeSynopsis,
)
from themetree.tracking.call_logger import CallLogger


class TrackedOracle(BaseJudgmentOracle):
    """Delegates to ``inner`` and logs operation, status and latency."""

    def __init__(self, inner: BaseJudgmentOracle, call_logger: CallLogger) -> None:
        self._inner = inner
        self._calls = call_logger

    @property
    def inner(self) -> BaseJudgmentOracle:
        return self._inner

    @property
    def call_logger(self) -> CallLogger:
        return self._calls

    async def compare_similarity(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[SimilarityJudgment]:
        return await self._track(
            "compare_similarity", 1, self._inner.compare_similarity(theme_a, theme_b)
        )

    async def compare_similarity_batch(
        self, pairs: list[tuple[ConsolidatedTheme, ConsolidatedTheme]]
    ) -> OracleResult[dict[int, SimilarityJudgment]]:
        return await self._track(
            "compare_similarity_batch",
            len(pairs),
            self._inner.compare_similarity_batch(pairs),
        )

    async def classify_domains(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[dict[int, DomainClassification]]:
        return await self._track(
            "classify_domains", len(themes), self._inner.classify_domains(themes)
        )

    async def decide_expansion(
        self, node: ConsolidatedTheme, depth: int
    ) -> OracleResult[ExpansionDecision]:
        return await self._track(
            "decide_expansion", 1, self._inner.decide_expansion(node, depth)
        )

    async def detect_duplicates(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[list[DuplicateGroup]]:
        return await self._track(
            "detect_duplicates", len(themes), self._inner.detect_duplicates(themes)
        )

    async def synthesize_theme(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[ThemeSynopsis]:
        return await self._track(
            "synthesize_theme", len(themes), self._inner.synthesize_theme(themes)
        )

    async def compare_cross_level(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[CrossLevelJudgment]:
        return await self._track(
            "compare_cross_level", 1, self._inner.compare_cross_level(theme_a, theme_b)
        )

    async def _track(self, operation: str, items: int, call: Awaitable[OracleResult]) -> OracleResult:
        start = time.monotonic()
        try:
            result = await call
        except Exception as exc:
            self._calls.record(
                operation, "failed", _elapsed_ms(start), items, reason=str(exc)
            )
            raise
        if isinstance(result, Failed):
            self._calls.record(
                operation, "failed", _elapsed_ms(start), items, reason=result.reason
            )
        else:
            self._calls.record(operation, "success", _elapsed_ms(start), items)
        return result


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
