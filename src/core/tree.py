# src/core/tree.py — v1
"""Pure helpers for walking and rebuilding theme trees."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from themetree.core.models import ConsolidatedTheme


def walk(roots: Iterable[ConsolidatedTheme]) -> Iterator[ConsolidatedTheme]:
    """Yield every node depth-first, parents before children."""
    stack = list(reversed(list(roots)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.child_themes))


def flatten(roots: Iterable[ConsolidatedTheme]) -> list[ConsolidatedTheme]:
    return list(walk(roots))


def count_nodes(roots: Iterable[ConsolidatedTheme]) -> int:
    return sum(1 for _ in walk(roots))


def max_level(roots: Iterable[ConsolidatedTheme]) -> int:
    return max((n.level for n in walk(roots)), default=0)


def relevel(
    node: ConsolidatedTheme,
    level: int,
    parent_id: str | None,
) -> ConsolidatedTheme:
    """Return a copy of ``node`` placed at ``level`` under ``parent_id``.

    Descendants are rebuilt so every child stays at its parent's level + 1.
    """
    children = [relevel(c, level + 1, node.id) for c in node.child_themes]
    return node.model_copy(
        update={"level": level, "parent_id": parent_id, "child_themes": children}
    )


def ordered_union(lists: Iterable[Iterable[str]]) -> list[str]:
    """Union of string sequences preserving first-seen order."""
    return list(dict.fromkeys(item for seq in lists for item in seq))
