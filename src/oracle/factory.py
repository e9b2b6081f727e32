# src/oracle/factory.py — v1
"""Build the default LLM-backed oracle from settings."""

from __future__ import annotations

import logging

from themetree.config.agents import PHASE_COMPONENT_MAP
from themetree.config.settings import Settings
from themetree.llm.base_client import BaseLLMClient
from themetree.llm.client_factory import create_llm_client
from themetree.llm.config import resolve_llm
from themetree.oracle.errors import OracleConfigurationError
from themetree.oracle.llm_oracle import LLMJudgmentOracle

logger = logging.getLogger(__name__)


def create_oracle(settings: Settings) -> LLMJudgmentOracle:
    """Create an LLMJudgmentOracle with one client per resolved provider:model.

    Raises:
        OracleConfigurationError: If a component routes to Anthropic and no
            API key is configured.
    """
    clients: dict[str, BaseLLMClient] = {}
    by_key: dict[str, BaseLLMClient] = {}

    components = sorted({c for comps in PHASE_COMPONENT_MAP.values() for c in comps})
    for component in components:
        assignment = resolve_llm(component, settings)
        if assignment.provider == "anthropic" and not settings.anthropic_api_key:
            raise OracleConfigurationError(
                "ANTHROPIC_API_KEY is not set; the judgment oracle cannot run"
            )
        if assignment.key not in by_key:
            by_key[assignment.key] = create_llm_client(
                assignment.provider, assignment.model, settings
            )
        clients[component] = by_key[assignment.key]
        logger.debug(
            "Oracle component %s → %s (%s)", component, assignment.key, assignment.source
        )

    default = clients.get("similarity") or next(iter(by_key.values()))
    return LLMJudgmentOracle(default, settings, component_clients=clients)
