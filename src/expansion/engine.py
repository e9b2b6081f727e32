# src/expansion/engine.py — v1
"""Recursive expansion engine.

For each node the oracle decides whether to decompose it. An accepted
decomposition is validated as an exact partition of the node's code,
materialized one level down, expanded recursively (together with any
children the node already had), deduplicated, and freshly merged survivors
are evaluated in turn.

Nodes are never mutated: every step returns a new node, so sibling subtrees
expand concurrently without locks. The oracle authors the
atomic/expand decision; ``max_expansion_depth`` is a safety cap, and a
node with more changed lines than one prompt can number
(``max_expansion_code_lines``) is kept atomic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

from themetree.config.settings import Settings
from themetree.core.code import parse_code_lines
from themetree.core.models import ConsolidatedTheme
from themetree.core.tree import relevel
from themetree.expansion.models import ExpansionFailure, ExpansionMetrics
from themetree.expansion.partition import (
    PartitionValidationError,
    materialize_children,
    validate_partition,
)
from themetree.expansion.sibling_dedup import SiblingDeduplicator
from themetree.logging.context import theme_context
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.errors import OracleConfigurationError
from themetree.oracle.models import Failed

logger = logging.getLogger(__name__)


class ExpansionEngine:
    """Recursively decompose theme trees.

    Args:
        oracle: Judgment oracle.
        settings: Depth cap and dedup configuration.
        deduplicator: Sibling deduplicator; built from oracle/settings if omitted.
    """

    def __init__(
        self,
        oracle: BaseJudgmentOracle,
        settings: Settings,
        deduplicator: SiblingDeduplicator | None = None,
    ) -> None:
        self._oracle = oracle
        self._settings = settings
        self.deduplicator = deduplicator or SiblingDeduplicator(oracle, settings)
        self.metrics = ExpansionMetrics()

    async def expand_all(
        self, roots: Sequence[ConsolidatedTheme]
    ) -> list[ConsolidatedTheme]:
        """Expand every root concurrently; a failing root is kept unchanged."""
        start = time.monotonic()
        expanded = await asyncio.gather(*(self._expand_contained(r, 0) for r in roots))

        m = self.metrics
        if m.themes_evaluated:
            m.expansion_rate = round(100.0 * m.themes_expanded / m.themes_evaluated, 2)
        m.processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Expansion: %d evaluated, %d expanded, %d atomic, %d failed, max depth %d",
            m.themes_evaluated, m.themes_expanded, m.atomic_themes_identified,
            m.failed_expansions, m.max_depth_reached,
        )
        return list(expanded)

    async def expand_node(
        self, node: ConsolidatedTheme, depth: int = 0
    ) -> ConsolidatedTheme:
        """Evaluate ``node`` and return its expanded replacement.

        Raises:
            PartitionValidationError: If the oracle's children do not
                partition this node's code.
            OracleConfigurationError: If the oracle is misconfigured.
        """
        with theme_context(node.id):
            self.metrics.themes_evaluated += 1
            self.metrics.max_depth_reached = max(self.metrics.max_depth_reached, depth)

            if depth >= self._settings.max_expansion_depth:
                logger.warning(
                    "Expansion safety cap (%d) reached at %s; not descending further",
                    self._settings.max_expansion_depth, node.id,
                )
                self._stop("max-depth")
                return node.model_copy(update={"is_expanded": False})

            line_count = sum(
                len(lines)
                for lines in parse_code_lines(node.code_snippets, node.affected_files).values()
            )
            if line_count > self._settings.max_expansion_code_lines:
                logger.warning(
                    "%s has %d changed lines, above the %d that fit one expansion prompt; "
                    "treating it as atomic",
                    node.id, line_count, self._settings.max_expansion_code_lines,
                )
                self._stop("code-limit")
                self.metrics.atomic_themes_identified += 1
                children = await self._expand_children(node.child_themes, depth + 1)
                return node.model_copy(
                    update={"child_themes": children, "is_atomic": True, "is_expanded": False}
                )

            result = await self._oracle.decide_expansion(node, depth)
            if isinstance(result, Failed):
                logger.warning(
                    "Expansion decision for %s unavailable (%s); treating as not expandable",
                    node.id, result.reason,
                )
                decision = None
            else:
                decision = result.value

            if decision is None or not decision.should_expand:
                is_atomic = bool(decision and decision.is_atomic)
                if decision is None:
                    self._stop("error")
                elif is_atomic:
                    self._stop("atomic")
                    self.metrics.atomic_themes_identified += 1
                else:
                    self._stop("oracle-decision")
                children = await self._expand_children(node.child_themes, depth + 1)
                return node.model_copy(
                    update={
                        "child_themes": children,
                        "is_atomic": is_atomic,
                        "is_expanded": False,
                    }
                )

            assigned = validate_partition(node, decision.children)
            new_children = materialize_children(node, decision.children, assigned)
            self.metrics.themes_expanded += 1
            self.metrics.children_created += len(new_children)
            logger.info(
                "Expanded %s (%s) into %d children at depth %d",
                node.id, node.name, len(new_children), depth,
            )

        existing = [relevel(c, node.level + 1, node.id) for c in node.child_themes]
        expanded = await self._expand_children(existing + new_children, depth + 1)

        before = {c.id for c in expanded}
        survivors = await self.deduplicator.deduplicate(expanded)
        survivors = list(
            await asyncio.gather(
                *(
                    self._expand_contained(s, depth + 1)
                    if s.id not in before and not s.is_evaluated
                    else _done(s)
                    for s in survivors
                )
            )
        )

        return node.model_copy(
            update={"child_themes": survivors, "is_atomic": False, "is_expanded": True}
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _expand_children(
        self, children: Sequence[ConsolidatedTheme], depth: int
    ) -> list[ConsolidatedTheme]:
        """Expand not-yet-evaluated children concurrently."""
        return list(
            await asyncio.gather(
                *(
                    _done(c) if c.is_evaluated else self._expand_contained(c, depth)
                    for c in children
                )
            )
        )

    async def _expand_contained(
        self, node: ConsolidatedTheme, depth: int
    ) -> ConsolidatedTheme:
        """Expand ``node``; on failure log, record and keep it as-is."""
        try:
            return await self.expand_node(node, depth)
        except OracleConfigurationError:
            raise
        except PartitionValidationError as exc:
            logger.error(
                "Partition validation failed; keeping %s un-expanded: %s",
                node.id, exc, extra={"data": exc.details()},
            )
            self._record_failure(node, exc)
        except Exception as exc:
            logger.exception("Expansion of %s failed; keeping it un-expanded", node.id)
            self._record_failure(node, exc)
        return node

    def _record_failure(self, node: ConsolidatedTheme, exc: Exception) -> None:
        self.metrics.failed_expansions += 1
        self._stop("error")
        self.metrics.failures.append(
            ExpansionFailure(
                theme_id=node.id,
                theme_name=node.name,
                error_type=type(exc).__name__,
                message=str(exc),
            )
        )

    def _stop(self, reason: str) -> None:
        self.metrics.stop_reasons[reason] = self.metrics.stop_reasons.get(reason, 0) + 1


async def _done(node: ConsolidatedTheme) -> ConsolidatedTheme:
    return node
