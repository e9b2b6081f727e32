# src/hierarchy/integrity.py — v1
"""Structural validation of a theme tree.

Builds a directed child -> parent graph and reports orphans, cycles, level
inconsistencies and duplicate ids. Nothing is repaired.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import networkx as nx

from themetree.core.models import ConsolidatedTheme
from themetree.hierarchy.models import IntegrityIssue, IntegrityReport

logger = logging.getLogger(__name__)


def validate_tree(roots: Sequence[ConsolidatedTheme]) -> IntegrityReport:
    """Check tree invariants for ``roots`` and everything below them."""
    report = IntegrityReport()
    nodes: dict[str, ConsolidatedTheme] = {}
    graph = nx.DiGraph()

    for root in roots:
        if root.parent_id is not None:
            report.warnings.append(
                IntegrityIssue(
                    kind="root_parent",
                    theme_id=root.id,
                    message=f"root {root.id} declares parent {root.parent_id}",
                )
            )
        if root.level != 0:
            _issue(
                report, "level", root.id,
                f"root {root.id} is at level {root.level}, expected 0",
            )
            report.level_inconsistencies.append(root.id)

    # Explicit traversal so each node is checked against its container.
    stack: list[tuple[ConsolidatedTheme, ConsolidatedTheme | None]] = [
        (root, None) for root in reversed(list(roots))
    ]
    while stack:
        node, container = stack.pop()
        report.total_nodes += 1

        if node.id in nodes:
            if node.id not in report.duplicate_ids:
                report.duplicate_ids.append(node.id)
                _issue(report, "duplicate_id", node.id, f"id {node.id} appears more than once")
            # Do not descend twice into a repeated subtree.
            continue
        nodes[node.id] = node
        graph.add_node(node.id)

        if container is not None:
            if node.parent_id != container.id:
                report.warnings.append(
                    IntegrityIssue(
                        kind="parent_mismatch",
                        theme_id=node.id,
                        message=(
                            f"{node.id} is stored under {container.id} "
                            f"but declares parent {node.parent_id}"
                        ),
                    )
                )
        stack.extend((child, node) for child in reversed(node.child_themes))

    for node in nodes.values():
        if node.parent_id is None:
            continue
        parent = nodes.get(node.parent_id)
        if parent is None:
            report.orphaned_ids.append(node.id)
            _issue(
                report, "orphan", node.id,
                f"{node.id} references missing parent {node.parent_id}",
            )
            continue
        graph.add_edge(node.id, parent.id)
        if node.level != parent.level + 1:
            report.level_inconsistencies.append(node.id)
            _issue(
                report, "level", node.id,
                f"{node.id} is at level {node.level} but parent "
                f"{parent.id} is at level {parent.level}",
            )

    for cycle in nx.simple_cycles(graph):
        for theme_id in cycle:
            if theme_id not in report.circular_ids:
                report.circular_ids.append(theme_id)
        _issue(
            report, "cycle", cycle[0],
            "circular parent chain: " + " -> ".join([*cycle, cycle[0]]),
        )

    report.is_valid = not report.issues
    if report.is_valid:
        logger.debug("Tree integrity OK: %d nodes", report.total_nodes)
    else:
        logger.warning(
            "Tree integrity: %d issues, %d warnings over %d nodes",
            len(report.issues), len(report.warnings), report.total_nodes,
        )
    return report


def _issue(report: IntegrityReport, kind: str, theme_id: str, message: str) -> None:
    report.issues.append(IntegrityIssue(kind=kind, theme_id=theme_id, message=message))
