# src/expansion/sibling_dedup.py — v1
"""Two-pass duplicate detection among sibling themes.

Pass 1 asks the oracle for duplicate groups within small batches and merges
each group. Pass 2 runs once over all pass-1 survivors so duplicates that
landed in different batches are caught. A failed oracle call leaves the
affected themes untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from themetree.config.settings import Settings
from themetree.consolidation.batching import chunked, dedup_batch_size
from themetree.consolidation.theme_merger import ThemeMerger
from themetree.core.models import ConsolidatedTheme
from themetree.expansion.models import DedupMetrics
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.models import DuplicateGroup, Failed

logger = logging.getLogger(__name__)


class SiblingDeduplicator:
    """Merge true duplicates within a sibling set."""

    def __init__(
        self,
        oracle: BaseJudgmentOracle,
        settings: Settings,
        merger: ThemeMerger | None = None,
    ) -> None:
        self._oracle = oracle
        self._settings = settings
        self._merger = merger or ThemeMerger(oracle)
        self.metrics = DedupMetrics()

    def should_run(self, count: int) -> bool:
        return (
            count > 1
            and not self._settings.skip_sibling_dedup
            and count >= self._settings.min_themes_for_batch_dedup
        )

    async def deduplicate(
        self, siblings: Sequence[ConsolidatedTheme]
    ) -> list[ConsolidatedTheme]:
        """Return the sibling set with duplicate groups merged, order preserved."""
        self.metrics.sibling_sets += 1
        if not self.should_run(len(siblings)):
            self.metrics.skipped_sets += 1
            return list(siblings)

        batches = chunked(list(siblings), dedup_batch_size(len(siblings)))
        self.metrics.batches += len(batches)
        results = await asyncio.gather(*(self._first_pass(batch) for batch in batches))
        survivors = [theme for batch in results for theme in batch]

        if (
            not self._settings.skip_second_pass_dedup
            and len(survivors) >= self._settings.min_themes_for_second_pass_dedup
        ):
            survivors = await self._second_pass(survivors)

        removed = len(siblings) - len(survivors)
        self.metrics.themes_removed += removed
        if removed:
            logger.info(
                "Sibling dedup: %d -> %d themes", len(siblings), len(survivors)
            )
        return survivors

    async def _first_pass(
        self, batch: list[ConsolidatedTheme]
    ) -> list[ConsolidatedTheme]:
        if len(batch) < 2:
            return batch
        result = await self._oracle.detect_duplicates(batch)
        if isinstance(result, Failed):
            logger.warning(
                "Duplicate detection failed for batch of %d (%s); keeping all",
                len(batch), result.reason,
            )
            self.metrics.failed_batches += 1
            return batch
        merged, count = await self._apply_groups(batch, result.value)
        self.metrics.first_pass_merges += count
        return merged

    async def _second_pass(
        self, survivors: list[ConsolidatedTheme]
    ) -> list[ConsolidatedTheme]:
        self.metrics.second_pass_runs += 1
        result = await self._oracle.detect_duplicates(survivors)
        if isinstance(result, Failed):
            logger.warning(
                "Second-pass duplicate detection failed (%s); keeping pass-1 result",
                result.reason,
            )
            return survivors
        merged, count = await self._apply_groups(survivors, result.value)
        self.metrics.second_pass_merges += count
        return merged

    async def _apply_groups(
        self,
        themes: list[ConsolidatedTheme],
        groups: Sequence[DuplicateGroup],
    ) -> tuple[list[ConsolidatedTheme], int]:
        """Merge each valid group; the merged node takes its first member's slot."""
        used: set[int] = set()
        plans: list[list[int]] = []
        for group in groups:
            indices = [
                i for i in dict.fromkeys(group.indices)
                if 0 <= i < len(themes) and i not in used
            ]
            if len(indices) < 2:
                continue
            used.update(indices)
            plans.append(indices)
            logger.debug(
                "Duplicate group %s: %s",
                [themes[i].id for i in indices], group.reasoning,
            )

        if not plans:
            return themes, 0

        merged = await asyncio.gather(
            *(
                self._merger.merge_group([themes[i] for i in plan], id_prefix="dedup")
                for plan in plans
            )
        )
        slot = {plan[0]: node for plan, node in zip(plans, merged)}

        output: list[ConsolidatedTheme] = []
        for i, theme in enumerate(themes):
            if i in slot:
                output.append(slot[i])
            elif i not in used:
                output.append(theme)
        return output, len(plans)
