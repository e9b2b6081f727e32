# src/api/facade.py — v1
"""Public API facade: single entry point for theme consolidation.

Usage:
    from themetree.api.facade import consolidate
    result = await consolidate(themes)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from themetree.config.settings import Settings, load_settings
from themetree.core.models import Theme
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.pipeline.models import PipelineResult
from themetree.pipeline.orchestrator import ThemePipeline
from themetree.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)


async def consolidate(
    themes: Sequence[Theme],
    settings: Settings | None = None,
    oracle: BaseJudgmentOracle | None = None,
    call_logger: CallLogger | None = None,
) -> PipelineResult:
    """Consolidate flat themes into an expanded, validated hierarchy.

    Args:
        themes: Input themes, in order.
        settings: Run configuration. Loaded from .env if None.
        oracle: Judgment oracle. An LLM-backed oracle is built from
            ``settings`` if None.
        call_logger: Optional tracker receiving one record per oracle call.

    Returns:
        PipelineResult with the root themes, metrics and integrity report.

    Raises:
        OracleConfigurationError: If the oracle cannot be configured or
            rejects its credentials.
    """
    settings = settings or load_settings()
    if oracle is None:
        from themetree.oracle.factory import create_oracle

        oracle = create_oracle(settings)

    pipeline = ThemePipeline(oracle, settings, call_logger=call_logger)
    return await pipeline.run(themes)


def parse_themes(raw: Iterable[Mapping[str, Any]]) -> list[Theme]:
    """Validate raw theme dicts (e.g. loaded from JSON) into Theme models.

    Raises:
        pydantic.ValidationError: If an item is not a valid theme.
    """
    return [Theme.model_validate(item) for item in raw]
