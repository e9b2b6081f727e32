# src/tracking/models.py — v1
"""Tracking domain models: OracleCallRecord, OperationStats."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class OracleCallRecord(BaseModel):
    """Individual oracle call log entry."""

    call_id: str
    timestamp: datetime
    operation: str
    status: Literal["success", "failed"]
    latency_ms: int
    item_count: int = 1
    reason: str = ""


class OperationStats(BaseModel):
    """Per-operation aggregated stats for a single run."""

    operation: str
    total_calls: int
    failure_count: int = 0
    items: int = 0
    avg_latency_ms: float = 0.0
    max_latency_ms: int = 0
