# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a scriptable in-memory judgment oracle, theme factories and test
settings. No external dependencies: nothing calls a real LLM.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest

from themetree.config.settings import Settings
from themetree.core.models import (
    ChildAssignment,
    CodeSpan,
    ConsolidatedTheme,
    ExpansionDecision,
    Theme,
    make_pair_key,
)
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.errors import OracleConfigurationError
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


class FakeOracle(BaseJudgmentOracle):
    """Scriptable oracle that counts calls per operation.

    Attributes:
        scores: pair key -> combined similarity score.
        default_score: Score for unscripted pairs.
        domains: theme id -> domain label. Unlisted themes get no label.
        expansions: theme id -> decision, or a callable (node, depth) -> decision.
        duplicates: callable (themes) -> list of DuplicateGroup.
        cross_level: pair key -> judgment.
        failing: operations that return Failed.
        misconfigured: every call raises OracleConfigurationError.
    """

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.scores: dict[str, float] = {}
        self.default_score = 0.1
        self.domains: dict[str, str] = {}
        self.expansions: dict[str, Any] = {}
        self.duplicates: Callable[[list[ConsolidatedTheme]], list[DuplicateGroup]] = (
            lambda themes: []
        )
        self.cross_level: dict[str, CrossLevelJudgment] = {}
        self.failing: set[str] = set()
        self.misconfigured = False

    def fail(self, *operations: str) -> None:
        self.failing.update(operations)

    def fail_everything(self) -> None:
        self.fail(
            "compare_similarity",
            "compare_similarity_batch",
            "classify_domains",
            "decide_expansion",
            "detect_duplicates",
            "synthesize_theme",
            "compare_cross_level",
        )

    def _enter(self, operation: str) -> Failed | None:
        self.calls[operation] += 1
        if self.misconfigured:
            raise OracleConfigurationError("no credentials")
        if operation in self.failing:
            return Failed(reason=f"{operation} scripted to fail")
        return None

    def _judge(self, a: ConsolidatedTheme, b: ConsolidatedTheme) -> SimilarityJudgment:
        score = self.scores.get(make_pair_key(a.id, b.id), self.default_score)
        return SimilarityJudgment(combined_score=score, should_merge=score >= 0.7)

    async def compare_similarity(self, theme_a, theme_b) -> OracleResult[SimilarityJudgment]:
        failed = self._enter("compare_similarity")
        return failed or Judged(self._judge(theme_a, theme_b))

    async def compare_similarity_batch(self, pairs) -> OracleResult[dict[int, SimilarityJudgment]]:
        failed = self._enter("compare_similarity_batch")
        return failed or Judged({i: self._judge(a, b) for i, (a, b) in enumerate(pairs)})

    async def classify_domains(self, themes) -> OracleResult[dict[int, DomainClassification]]:
        failed = self._enter("classify_domains")
        return failed or Judged(
            {
                i: DomainClassification(domain=self.domains[t.id])
                for i, t in enumerate(themes)
                if t.id in self.domains
            }
        )

    async def decide_expansion(self, node, depth) -> OracleResult[ExpansionDecision]:
        failed = self._enter("decide_expansion")
        if failed:
            return failed
        scripted = self.expansions.get(node.id)
        if callable(scripted):
            scripted = scripted(node, depth)
        if scripted is None:
            scripted = ExpansionDecision(should_expand=False, is_atomic=True)
        return Judged(scripted)

    async def detect_duplicates(self, themes) -> OracleResult[list[DuplicateGroup]]:
        failed = self._enter("detect_duplicates")
        return failed or Judged(self.duplicates(list(themes)))

    async def synthesize_theme(self, themes) -> OracleResult[ThemeSynopsis]:
        failed = self._enter("synthesize_theme")
        return failed or Judged(
            ThemeSynopsis(
                name=" & ".join(t.name for t in themes),
                description="Unified: " + "; ".join(t.description for t in themes),
            )
        )

    async def compare_cross_level(self, theme_a, theme_b) -> OracleResult[CrossLevelJudgment]:
        failed = self._enter("compare_cross_level")
        if failed:
            return failed
        return Judged(
            self.cross_level.get(
                make_pair_key(theme_a.id, theme_b.id),
                CrossLevelJudgment(similarity_score=0.1, relationship="distinct"),
            )
        )


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from .env with instant retries."""
    return Settings(_env_file=None, retry_base_delay_s=0)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        overrides.setdefault("retry_base_delay_s", 0)
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def make_theme() -> Callable[..., ConsolidatedTheme]:
    """Factory for consolidated theme nodes with sensible defaults."""

    def _make(
        theme_id: str,
        name: str | None = None,
        files: list[str] | None = None,
        **fields: Any,
    ) -> ConsolidatedTheme:
        return ConsolidatedTheme(
            id=theme_id,
            name=name or f"Theme {theme_id}",
            description=fields.pop("description", f"Changes for {theme_id}"),
            affected_files=files if files is not None else [f"src/{theme_id}.py"],
            source_themes=fields.pop("source_themes", [theme_id]),
            **fields,
        )

    return _make


@pytest.fixture
def sample_themes() -> list[Theme]:
    """Five flat input themes; the first two are near-duplicates."""
    return [
        Theme(
            id="t1",
            name="Add login form validation",
            description="Validate email and password fields on the login form",
            affected_files=["src/login.ts", "src/validators.ts"],
            code_snippets=["+ if (!isEmail(email)) return error;"],
        ),
        Theme(
            id="t2",
            name="Add login form validation rules",
            description="Reject malformed emails on login",
            affected_files=["src/login.ts", "src/validators.ts"],
            code_snippets=["+ if (!password) return error;"],
        ),
        Theme(
            id="t3",
            name="Refactor database pool",
            description="Reuse connections across requests",
            affected_files=["src/db/pool.ts"],
        ),
        Theme(
            id="t4",
            name="Update README",
            description="Document the new setup steps",
            affected_files=["README.md"],
        ),
        Theme(
            id="t5",
            name="Bump CI cache key",
            description="Invalidate stale dependency caches",
            affected_files=[".github/workflows/ci.yml"],
        ),
    ]


def split_decision(
    *children: tuple[str, list[CodeSpan]],
) -> ExpansionDecision:
    """Expansion decision with one named child per (name, spans) tuple."""
    return ExpansionDecision(
        should_expand=True,
        children=[
            ChildAssignment(name=name, description=f"{name} part", assigned_code=spans)
            for name, spans in children
        ],
    )


@pytest.fixture
def make_split() -> Callable[..., ExpansionDecision]:
    return split_decision
