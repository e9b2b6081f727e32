# src/core/code.py — v1
"""Code snippet parsing for partition validation and child materialization.

A node's code is the ordered set of changed lines found in its snippets,
numbered per file from 1. Unified-diff headers switch the current file;
snippets without headers are attributed to the best-matching affected file.
When a file's body contains diff change lines, only those lines count;
otherwise every non-blank line does.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath

from themetree.core.models import CodeSpan, ConsolidatedTheme

UNKNOWN_FILE = "<unknown>"

_DIFF_GIT_RE = re.compile(r"^diff --git a/(\S+) b/(\S+)")
_OLD_HEADER_RE = re.compile(r"^--- (\S+)\s*$")
_NEW_HEADER_RE = re.compile(r"^\+\+\+ (\S+)\s*$")
_HUNK_RE = re.compile(r"^@@ .*@@")
_METADATA_RE = re.compile(
    r"^(index [0-9a-f]+\.\.[0-9a-f]+|new file mode|deleted file mode|"
    r"similarity index|rename (from|to) |old mode|new mode|\\ No newline)"
)


@dataclass(frozen=True)
class CodeLine:
    """One numbered unit of a node's code."""

    file: str
    number: int
    text: str


def is_change_line(line: str) -> bool:
    """True for '+'/'-' diff lines that are not file headers."""
    if line.startswith("+") and not line.startswith("+++"):
        return True
    if line.startswith("-") and not line.startswith("---"):
        return True
    return False


def parse_code_lines(
    snippets: Iterable[str],
    affected_files: list[str],
) -> dict[str, list[CodeLine]]:
    """Parse snippets into numbered code units grouped by file.

    Args:
        snippets: Code snippet text blocks, in node order.
        affected_files: The node's affected files, used to attribute
            header-less snippets and to normalize header paths.

    Returns:
        Ordered mapping file -> numbered CodeLines (numbering starts at 1).
    """
    bodies: dict[str, list[str]] = {}

    for snippet in snippets:
        lines = snippet.splitlines()
        current = _default_file(snippet, affected_files)
        previous_was_old_header = False

        for index, line in enumerate(lines):
            header = _header_path(line, index, lines, affected_files, previous_was_old_header)
            previous_was_old_header = False
            if header is not None:
                kind, path = header
                if path != "/dev/null":
                    current = _resolve_path(path, affected_files)
                previous_was_old_header = kind == "old"
                continue
            if _HUNK_RE.match(line) or _METADATA_RE.match(line):
                continue
            bodies.setdefault(current, []).append(line.rstrip("\n"))

    result: dict[str, list[CodeLine]] = {}
    for file, body in bodies.items():
        if any(is_change_line(ln) for ln in body):
            units = [ln for ln in body if is_change_line(ln)]
        else:
            units = [ln for ln in body if ln.strip()]
        if units:
            result[file] = [
                CodeLine(file=file, number=i, text=text)
                for i, text in enumerate(units, start=1)
            ]
    return result


def render_snippet(file: str, lines: list[CodeLine]) -> str:
    """Render code units back into a header-prefixed snippet."""
    body = "\n".join(ln.text for ln in lines)
    return f"--- {file}\n{body}"


def attributed_snippets(snippets: Iterable[str], affected_files: list[str]) -> list[str]:
    """Re-render a node's code with one explicit file header per file.

    Used before snippets from several nodes are pooled, so each line stays
    with its own file instead of falling back to the pooled node's first
    affected file.
    """
    code = parse_code_lines(snippets, affected_files)
    return [render_snippet(file, lines) for file, lines in code.items()]


def pool_snippets(nodes: Iterable[ConsolidatedTheme]) -> list[str]:
    """Snippets of several nodes, each re-rendered under its own file headers."""
    return [
        snippet
        for node in nodes
        for snippet in attributed_snippets(node.code_snippets, node.affected_files)
    ]


def format_numbered(code: dict[str, list[CodeLine]], max_lines: int = 2000) -> str:
    """Format code units with their numbers so they can be referenced as spans."""
    out: list[str] = []
    shown = 0
    for file, lines in code.items():
        out.append(f"### {file} ({len(lines)} lines)")
        for ln in lines:
            if shown >= max_lines:
                out.append("... (truncated)")
                return "\n".join(out)
            out.append(f"{ln.number:5d} | {ln.text}")
            shown += 1
    return "\n".join(out) or "(no code)"


def coalesce_spans(file: str, numbers: Iterable[int]) -> list[CodeSpan]:
    """Collapse line numbers into contiguous inclusive spans."""
    spans: list[CodeSpan] = []
    ordered = sorted(set(numbers))
    if not ordered:
        return spans
    start = prev = ordered[0]
    for n in ordered[1:]:
        if n == prev + 1:
            prev = n
            continue
        spans.append(CodeSpan(file=file, start_line=start, end_line=prev))
        start = prev = n
    spans.append(CodeSpan(file=file, start_line=start, end_line=prev))
    return spans


def count_added_lines(snippets: Iterable[str]) -> int:
    """Number of '+' lines across snippets (file headers excluded)."""
    return sum(
        1
        for snippet in snippets
        for line in snippet.splitlines()
        if line.startswith("+") and not line.startswith("+++")
    )


def _header_path(
    line: str,
    index: int,
    lines: list[str],
    affected_files: list[str],
    previous_was_old_header: bool,
) -> tuple[str, str] | None:
    """Recognize a file header line, returning (kind, path)."""
    match = _DIFF_GIT_RE.match(line)
    if match:
        return ("git", match.group(2))

    match = _OLD_HEADER_RE.match(line)
    if match:
        path = _strip_prefix(match.group(1), "a/")
        next_is_new = index + 1 < len(lines) and lines[index + 1].startswith("+++ ")
        if next_is_new or index == 0 or _known(path, affected_files):
            return ("old", path)
        return None

    match = _NEW_HEADER_RE.match(line)
    if match:
        path = _strip_prefix(match.group(1), "b/")
        if previous_was_old_header or match.group(1).startswith("b/") or _known(path, affected_files):
            return ("new", path)
    return None


def _strip_prefix(path: str, prefix: str) -> str:
    return path[len(prefix):] if path.startswith(prefix) else path


def _known(path: str, affected_files: list[str]) -> bool:
    return _resolve_path(path, affected_files) in affected_files


def _resolve_path(path: str, affected_files: list[str]) -> str:
    """Map a header path onto an affected file when they name the same file."""
    if path in affected_files:
        return path
    for f in affected_files:
        if f.endswith("/" + path) or path.endswith("/" + f):
            return f
    return path


def _default_file(snippet: str, affected_files: list[str]) -> str:
    """Attribute a header-less snippet to an affected file."""
    if len(affected_files) == 1:
        return affected_files[0]
    for f in affected_files:
        if f in snippet:
            return f
    for f in affected_files:
        if PurePosixPath(f).name in snippet:
            return f
    return affected_files[0] if affected_files else UNKNOWN_FILE
