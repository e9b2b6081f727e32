# src/consolidation/theme_merger.py — v1
"""Theme merger: collapse a merge group into a single node.

Files are unioned, snippets concatenated in group order, confidence
averaged and provenance concatenated. Name and description come from the
oracle, falling back to the first member's when the oracle fails. Members'
children move under the merged node.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence

from themetree.core.code import pool_snippets
from themetree.core.models import ConsolidatedTheme, ConsolidationMethod
from themetree.core.tree import ordered_union, relevel
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.models import Failed

logger = logging.getLogger(__name__)


def new_theme_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def combine_themes(
    group: Sequence[ConsolidatedTheme],
    *,
    theme_id: str,
    name: str,
    description: str,
    method: ConsolidationMethod = "merge",
) -> ConsolidatedTheme:
    """Build the merged node for ``group`` (pure, no oracle).

    The node takes the level and parent of the first member; all members'
    children are re-levelled beneath it.
    """
    if not group:
        raise ValueError("cannot combine an empty group")
    first = group[0]
    children = [
        relevel(child, first.level + 1, theme_id)
        for member in group
        for child in member.child_themes
    ]
    return ConsolidatedTheme(
        id=theme_id,
        name=name,
        description=description,
        affected_files=ordered_union(t.affected_files for t in group),
        code_snippets=pool_snippets(group),
        confidence=sum(t.confidence for t in group) / len(group),
        context="\n".join(t.context for t in group if t.context),
        level=first.level,
        parent_id=first.parent_id,
        child_themes=children,
        source_themes=[s for t in group for s in t.source_themes],
        consolidation_method=method,
    )


def fallback_synopsis(group: Sequence[ConsolidatedTheme]) -> tuple[str, str]:
    first = group[0]
    note = f"(consolidated from {len(group)} related themes)"
    description = f"{first.description} {note}" if first.description else note
    return first.name, description


class ThemeMerger:
    """Merge groups of themes using the oracle for naming."""

    def __init__(self, oracle: BaseJudgmentOracle) -> None:
        self._oracle = oracle
        self.naming_fallbacks = 0

    async def merge_group(
        self,
        group: Sequence[ConsolidatedTheme],
        id_prefix: str = "merged",
    ) -> ConsolidatedTheme:
        """Merge a group; single-member groups pass through unchanged."""
        if not group:
            raise ValueError("cannot merge an empty group")
        if len(group) == 1:
            return group[0]

        result = await self._oracle.synthesize_theme(list(group))
        if isinstance(result, Failed):
            logger.warning(
                "Theme naming failed for group of %d (%s); using first member's name",
                len(group), result.reason,
            )
            self.naming_fallbacks += 1
            name, description = fallback_synopsis(group)
        else:
            name, description = result.value.name, result.value.description

        merged = combine_themes(
            group,
            theme_id=new_theme_id(id_prefix),
            name=name,
            description=description,
        )
        logger.debug(
            "Merged %s into %s (%s)", [t.id for t in group], merged.id, merged.name
        )
        return merged

    async def merge_all(
        self, groups: Sequence[Sequence[ConsolidatedTheme]]
    ) -> list[ConsolidatedTheme]:
        """Merge every group concurrently, preserving group order."""
        return list(await asyncio.gather(*(self.merge_group(g) for g in groups)))
