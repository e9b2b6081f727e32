# src/logging/context.py — v1
"""Contextual logging support: attach run_id, stage and theme_id to log records.

Context variables are copied into every asyncio task, so concurrent subtree
expansions each carry their own ``theme_id`` without interfering.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_theme_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "theme_id", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    theme_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        theme_id=_theme_id.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per pipeline run)."""
    _run_id.set(run_id)


def set_stage(stage: str | None) -> None:
    _stage.set(stage)


@contextmanager
def theme_context(theme_id: str) -> Iterator[None]:
    """Scope log records to one theme node."""
    token = _theme_id.set(theme_id)
    try:
        yield
    finally:
        _theme_id.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _theme_id.set(None)
