# src/expansion/partition.py — v1
"""Partition validation and child materialization.

Before an expansion is accepted, the oracle's child assignments must cover
the parent's code exactly: every numbered change line assigned to one child,
no line assigned twice, no span outside the parent's files or line range.
Violations raise PartitionValidationError with enough context to diagnose
the offending assignment; nothing is silently dropped or invented.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from themetree.core.code import CodeLine, coalesce_spans, parse_code_lines, render_snippet
from themetree.core.models import ChildAssignment, CodeSpan, ConsolidatedTheme

logger = logging.getLogger(__name__)

AssignedLines = dict[str, list[CodeLine]]


class PartitionValidationError(Exception):
    """Child assignments do not partition the parent's code."""

    def __init__(
        self,
        message: str,
        *,
        node_id: str,
        node_name: str,
        assignment: str | None = None,
        span: CodeSpan | None = None,
        missing: list[CodeSpan] | None = None,
        duplicated: list[CodeSpan] | None = None,
        expected_files: list[str] | None = None,
        actual_files: list[str] | None = None,
    ) -> None:
        self.node_id = node_id
        self.node_name = node_name
        self.assignment = assignment
        self.span = span
        self.missing = missing or []
        self.duplicated = duplicated or []
        self.expected_files = expected_files or []
        self.actual_files = actual_files or []
        super().__init__(f"Invalid partition of '{node_name}' ({node_id}): {message}")

    def details(self) -> dict[str, object]:
        """Diagnostic context for structured logs."""
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "assignment": self.assignment,
            "span": str(self.span) if self.span else None,
            "missing": [str(s) for s in self.missing],
            "duplicated": [str(s) for s in self.duplicated],
            "expected_files": self.expected_files,
            "actual_files": self.actual_files,
        }


def validate_partition(
    node: ConsolidatedTheme,
    children: Sequence[ChildAssignment],
) -> list[AssignedLines]:
    """Check that ``children`` partition ``node``'s code.

    Returns:
        For each child, its assigned code lines grouped by file.

    Raises:
        PartitionValidationError: On any gap, overlap or invalid span.
    """
    code = parse_code_lines(node.code_snippets, node.affected_files)
    expected_files = list(code)
    actual_files = list(
        dict.fromkeys(span.file for child in children for span in child.assigned_code)
    )
    context = {
        "node_id": node.id,
        "node_name": node.name,
        "expected_files": expected_files,
        "actual_files": actual_files,
    }

    if not children:
        raise PartitionValidationError("expansion returned no child assignments", **context)

    owners: dict[tuple[str, int], int] = {}
    duplicated: dict[str, set[int]] = {}
    assigned: list[AssignedLines] = []

    for index, child in enumerate(children):
        if not child.assigned_code:
            raise PartitionValidationError(
                f"child '{child.name}' has no assigned code",
                assignment=child.name,
                **context,
            )

        lines: AssignedLines = {}
        for span in child.assigned_code:
            if span.file not in node.affected_files:
                raise PartitionValidationError(
                    f"child '{child.name}' references {span.file}, "
                    "which is not an affected file of the parent",
                    assignment=child.name,
                    span=span,
                    **context,
                )
            if span.start_line < 1 or span.end_line < span.start_line:
                raise PartitionValidationError(
                    f"child '{child.name}' has an empty span {span}",
                    assignment=child.name,
                    span=span,
                    **context,
                )
            file_lines = code.get(span.file, [])
            if span.end_line > len(file_lines):
                raise PartitionValidationError(
                    f"child '{child.name}' span {span} exceeds the "
                    f"{len(file_lines)} changed lines of {span.file}",
                    assignment=child.name,
                    span=span,
                    **context,
                )

            for number in range(span.start_line, span.end_line + 1):
                unit = (span.file, number)
                if unit in owners:
                    duplicated.setdefault(span.file, set()).add(number)
                    continue
                owners[unit] = index
                lines.setdefault(span.file, []).append(file_lines[number - 1])

        for file_lines_assigned in lines.values():
            file_lines_assigned.sort(key=lambda ln: ln.number)
        assigned.append(lines)

    missing: list[CodeSpan] = []
    for file, file_lines in code.items():
        gaps = [ln.number for ln in file_lines if (file, ln.number) not in owners]
        missing.extend(coalesce_spans(file, gaps))
    duplicate_spans = [
        span for file, numbers in duplicated.items() for span in coalesce_spans(file, numbers)
    ]

    if missing or duplicate_spans:
        problems: list[str] = []
        if missing:
            problems.append("unassigned " + ", ".join(str(s) for s in missing))
        if duplicate_spans:
            problems.append("assigned twice " + ", ".join(str(s) for s in duplicate_spans))
        raise PartitionValidationError(
            "; ".join(problems),
            missing=missing,
            duplicated=duplicate_spans,
            **context,
        )

    return assigned


def materialize_children(
    node: ConsolidatedTheme,
    children: Sequence[ChildAssignment],
    assigned: Sequence[AssignedLines],
) -> list[ConsolidatedTheme]:
    """Turn validated assignments into child nodes at ``node.level + 1``."""
    total = sum(len(lines) for by_file in assigned for lines in by_file.values()) or 1
    result: list[ConsolidatedTheme] = []

    for index, (child, by_file) in enumerate(zip(children, assigned), start=1):
        share = sum(len(lines) for lines in by_file.values()) / total
        confidence = 0.8
        if share < 0.1 or share > 0.8:
            confidence -= 0.1

        result.append(
            ConsolidatedTheme(
                id=f"{node.id}_c{index}",
                name=child.name,
                description=child.description,
                affected_files=list(by_file),
                code_snippets=[render_snippet(f, lines) for f, lines in by_file.items()],
                confidence=round(confidence, 2),
                context=child.rationale,
                level=node.level + 1,
                parent_id=node.id,
                source_themes=list(node.source_themes),
                consolidation_method="expansion",
                business_impact=child.business_value,
                technical_purpose=child.technical_purpose,
            )
        )
    return result
