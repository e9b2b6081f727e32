# src/tracking/call_logger.py — v1
"""Oracle call logging: records every judgment call of a run.

Feeds the "oracle call count" effectiveness metric and can be written out
as JSON Lines for post-run analysis.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from themetree.tracking.models import OperationStats, OracleCallRecord

logger = logging.getLogger(__name__)


class CallLogger:
    """Accumulates oracle call records during a pipeline run."""

    def __init__(self) -> None:
        self._records: list[OracleCallRecord] = []

    def record(
        self,
        operation: str,
        status: str,
        latency_ms: int,
        item_count: int = 1,
        reason: str = "",
    ) -> OracleCallRecord:
        """Record an oracle call.

        Args:
            operation: Oracle operation name (e.g. "decide_expansion").
            status: "success" or "failed".
            latency_ms: Wall-clock duration of the call.
            item_count: Pairs or themes covered by the call.
            reason: Failure reason, if any.

        Returns:
            The recorded OracleCallRecord.
        """
        record = OracleCallRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            operation=operation,
            status=status,
            latency_ms=latency_ms,
            item_count=item_count,
            reason=reason,
        )
        self._records.append(record)
        return record

    @property
    def records(self) -> list[OracleCallRecord]:
        """All recorded calls."""
        return list(self._records)

    @property
    def total_calls(self) -> int:
        return len(self._records)

    @property
    def failed_calls(self) -> int:
        return sum(1 for r in self._records if r.status == "failed")

    def by_operation(self) -> dict[str, OperationStats]:
        """Aggregate records per operation."""
        grouped: dict[str, list[OracleCallRecord]] = {}
        for r in self._records:
            grouped.setdefault(r.operation, []).append(r)
        return {
            op: OperationStats(
                operation=op,
                total_calls=len(recs),
                failure_count=sum(1 for r in recs if r.status == "failed"),
                items=sum(r.item_count for r in recs),
                avg_latency_ms=sum(r.latency_ms for r in recs) / len(recs),
                max_latency_ms=max(r.latency_ms for r in recs),
            )
            for op, recs in grouped.items()
        }

    def save(self, path: Path) -> None:
        """Save all records to a JSON Lines file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            for record in self._records:
                f.write(json.dumps(record.model_dump(), default=str) + "\n")
        logger.debug("Saved %d oracle call records to %s", len(self._records), path)
