# src/oracle/errors.py — v1
"""Oracle error hierarchy.

OracleCallError is recoverable: call sites degrade to a heuristic or a
conservative default. OracleConfigurationError means every call would fail
(e.g. missing credentials) and is raised once instead of degrading.
"""

from __future__ import annotations


class OracleError(Exception):
    """Base class for judgment oracle errors."""


class OracleCallError(OracleError):
    """A single oracle call failed or returned an unusable response."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class OracleConfigurationError(OracleError):
    """The oracle cannot serve any call with the current configuration."""
