# src/oracle/base_oracle.py — v1
"""Abstract judgment oracle interface.

The engine's only external capability surface. Implementations return
``Judged`` or ``Failed`` and must never raise for an ordinary call failure;
the single exception is OracleConfigurationError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from themetree.core.models import ConsolidatedTheme, ExpansionDecision
from themetree.oracle.models import (
    CrossLevelJudgment,
    DomainClassification,
    DuplicateGroup,
    Failed,
    Judged,
    OracleResult,
    SimilarityJudgment,
    ThemeSynopsis,
)


class BaseJudgmentOracle(ABC):
    """Unified interface for similarity, domain, expansion and dedup judgments."""

    @abstractmethod
    async def compare_similarity(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[SimilarityJudgment]:
        """Judge one pair."""

    @abstractmethod
    async def compare_similarity_batch(
        self, pairs: list[tuple[ConsolidatedTheme, ConsolidatedTheme]]
    ) -> OracleResult[dict[int, SimilarityJudgment]]:
        """Judge many pairs; keys are indices into ``pairs``. Missing keys are allowed."""

    @abstractmethod
    async def classify_domains(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[dict[int, DomainClassification]]:
        """Label themes with business domains; keys are indices into ``themes``."""

    async def classify_domain(
        self, theme: ConsolidatedTheme
    ) -> OracleResult[DomainClassification]:
        result = await self.classify_domains([theme])
        if isinstance(result, Failed):
            return result
        if 0 not in result.value:
            return Failed(reason="no classification returned")
        return Judged(result.value[0])

    @abstractmethod
    async def decide_expansion(
        self, node: ConsolidatedTheme, depth: int
    ) -> OracleResult[ExpansionDecision]:
        """Decide whether ``node`` should be split, and how."""

    @abstractmethod
    async def detect_duplicates(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[list[DuplicateGroup]]:
        """Group true duplicates among sibling themes."""

    @abstractmethod
    async def synthesize_theme(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[ThemeSynopsis]:
        """Produce a unified name and description for a merge group."""

    @abstractmethod
    async def compare_cross_level(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[CrossLevelJudgment]:
        """Classify the relationship of two themes at different tree positions."""
