# src/consolidation/domain_hierarchy.py — v1
"""Domain hierarchy builder — group consolidated themes under business domains.

Themes are classified in batches under a bounded concurrency pool. Labels
that differ only in case or spacing share a bucket, named after the first
label seen. Every bucket that reaches ``min_themes_for_parent`` gets a synthesized level-0
parent; smaller buckets stay as standalone roots. Oracle failures degrade to
a keyword heuristic and never abort the run.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Sequence

from themetree.config.settings import Settings
from themetree.consolidation.batching import chunked, domain_batch_size
from themetree.consolidation.models import HierarchyMetrics
from themetree.consolidation.theme_merger import new_theme_id
from themetree.core.code import pool_snippets
from themetree.core.models import ConsolidatedTheme
from themetree.core.tree import ordered_union, relevel
from themetree.llm.retry import LLMRetryExhausted
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.calls import call_with_retry
from themetree.oracle.models import DomainClassification

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "System Enhancement"

# Checked in order; first match wins.
_DOMAIN_KEYWORDS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(tests?|spec|specs|testing)\b"), "Quality Assurance"),
    (re.compile(r"\b(config\w*|settings?)\b"), "System Configuration"),
    (re.compile(r"\b(auth\w*|login|users?)\b"), "User Management"),
    (re.compile(r"\b(api|apis|endpoints?|services?)\b"), "API Services"),
    (re.compile(r"\b(ui|components?|interfaces?)\b"), "User Interface"),
    (re.compile(r"\b(data|database|storage)\b"), "Data Management"),
    (re.compile(r"\b(errors?|fix\w*|bugs?)\b"), "Error Resolution"),
]


def heuristic_domain(theme: ConsolidatedTheme) -> str:
    """Keyword-based domain label used when the oracle cannot answer."""
    text = f"{theme.name} {theme.description}".lower()
    for pattern, domain in _DOMAIN_KEYWORDS:
        if pattern.search(text):
            return domain
    return DEFAULT_DOMAIN


def domain_key(label: str) -> str:
    """Bucket key for a domain label, ignoring case and spacing."""
    return " ".join(label.split()).casefold()


class DomainHierarchyBuilder:
    """Bucket themes by business domain and synthesize parent nodes."""

    def __init__(self, oracle: BaseJudgmentOracle, settings: Settings) -> None:
        self._oracle = oracle
        self._settings = settings
        self.metrics = HierarchyMetrics()

    async def classify(self, themes: Sequence[ConsolidatedTheme]) -> list[str]:
        """Return one domain label per theme, in input order."""
        labels: list[str | None] = [None] * len(themes)
        if not themes:
            return []

        indexed = list(enumerate(themes))
        batches = chunked(indexed, domain_batch_size(len(themes)))
        semaphore = asyncio.Semaphore(self._settings.domain_concurrency)

        results = await asyncio.gather(
            *(self._classify_batch([t for _, t in batch], semaphore) for batch in batches)
        )
        for batch, classifications in zip(batches, results):
            for local_index, (global_index, _) in enumerate(batch):
                found = classifications.get(local_index)
                if found is not None:
                    labels[global_index] = found.domain
                    self.metrics.oracle_classified += 1

        final: list[str] = []
        for theme, label in zip(themes, labels):
            if label is None:
                label = heuristic_domain(theme)
                self.metrics.heuristic_classified += 1
                logger.debug("Heuristic domain for %s: %s", theme.id, label)
            final.append(label)
        self.metrics.themes_classified = len(final)
        return final

    async def build(
        self, themes: Sequence[ConsolidatedTheme]
    ) -> list[ConsolidatedTheme]:
        """Classify themes and return the new list of level-0 roots."""
        start = time.monotonic()
        self.metrics = HierarchyMetrics()
        if not themes:
            return []

        labels = await self.classify(themes)
        buckets: dict[str, list[ConsolidatedTheme]] = {}
        display: dict[str, str] = {}
        for theme, label in zip(themes, labels):
            label = " ".join(label.split()) or DEFAULT_DOMAIN
            key = domain_key(label)
            display.setdefault(key, label)
            buckets.setdefault(key, []).append(theme)

        roots: list[ConsolidatedTheme] = []
        for key, members in buckets.items():
            if len(members) >= self._settings.min_themes_for_parent:
                roots.append(create_parent_theme(display[key], members))
                self.metrics.parents_created += 1
            else:
                roots.extend(relevel(m, 0, None) for m in members)
                self.metrics.standalone_roots += len(members)

        self.metrics.domains = len(buckets)
        self.metrics.processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Domain hierarchy: %d themes, %d domains, %d parents, %d standalone roots",
            len(themes), self.metrics.domains,
            self.metrics.parents_created, self.metrics.standalone_roots,
        )
        return roots

    async def _classify_batch(
        self,
        batch: list[ConsolidatedTheme],
        semaphore: asyncio.Semaphore,
    ) -> dict[int, DomainClassification]:
        async with semaphore:
            try:
                return await call_with_retry(
                    lambda: self._oracle.classify_domains(batch),
                    operation="classify_domains",
                    max_retries=self._settings.domain_max_retries,
                    base_delay_s=self._settings.retry_base_delay_s,
                )
            except LLMRetryExhausted as exc:
                logger.warning(
                    "Domain classification failed for %d themes (%s); using keyword heuristic",
                    len(batch), exc.error_type,
                )
                return {}


def create_parent_theme(
    domain: str, members: Sequence[ConsolidatedTheme]
) -> ConsolidatedTheme:
    """Synthesize a level-0 parent owning ``members`` at level 1."""
    parent_id = new_theme_id("parent")
    names = ", ".join(m.name for m in members)
    return ConsolidatedTheme(
        id=parent_id,
        name=domain,
        description=f"Consolidated theme for {len(members)} related changes: {names}",
        affected_files=ordered_union(m.affected_files for m in members),
        code_snippets=pool_snippets(members),
        confidence=sum(m.confidence for m in members) / len(members),
        context="\n".join(m.context for m in members if m.context),
        level=0,
        parent_id=None,
        child_themes=[relevel(m, 1, parent_id) for m in members],
        source_themes=[s for m in members for s in m.source_themes],
        consolidation_method="hierarchy",
        business_impact=(
            f"Umbrella theme covering {len(members)} related changes in {domain.lower()}"
        ),
    )
