# src/config/agents.py — v1
"""Declarative oracle component configuration.

Each oracle operation is served by a named component so that providers and
models can be routed per operation (see llm/config.py).
"""

from __future__ import annotations

# Oracle operation → component name used for LLM routing.
OPERATION_COMPONENT_MAP: dict[str, str] = {
    "compare_similarity": "similarity",
    "compare_similarity_batch": "similarity",
    "classify_domains": "domain",
    "synthesize_theme": "naming",
    "decide_expansion": "expansion",
    "detect_duplicates": "dedup",
    "compare_cross_level": "cross_level",
}

# Phase-to-component mapping for LLM routing.
PHASE_COMPONENT_MAP: dict[str, list[str]] = {
    "consolidation": ["similarity", "domain", "naming"],
    "expansion": ["expansion", "dedup", "cross_level"],
}

# Operations whose call sites retry ``Failed`` results under their own
# settings budget. The oracle makes one LLM attempt per call for these.
CALLER_RETRIED_OPERATIONS: frozenset[str] = frozenset(
    {
        "compare_similarity",
        "compare_similarity_batch",
        "classify_domains",
        "compare_cross_level",
    }
)
