# src/llm/config.py — v1
"""Pick the provider and model each oracle component talks to.

The most specific non-empty setting wins: the component's own
``LLM_<COMPONENT>`` value, then ``LLM_PHASE_<PHASE>`` for the pipeline phase
the component belongs to, then ``LLM_DEFAULT_PROVIDER``/``LLM_DEFAULT_MODEL``.
When all of those are blank the built-in Anthropic model is used.
"""

from __future__ import annotations

from dataclasses import dataclass

from themetree.config.agents import PHASE_COMPONENT_MAP
from themetree.config.settings import Settings

_BUILTIN_PROVIDER = "anthropic"
_BUILTIN_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class LLMAssignment:
    """Where one component's prompts go, and which setting chose it."""

    provider: str
    model: str
    source: str  # component | phase | default | fallback

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model}"


def phase_of(component: str) -> str | None:
    """Pipeline phase that owns ``component``, if any."""
    return next(
        (phase for phase, members in PHASE_COMPONENT_MAP.items() if component in members),
        None,
    )


def _split_target(value: str) -> tuple[str, str] | None:
    # Values without a colon are ignored so a half-filled setting falls through.
    provider, sep, model = (value or "").partition(":")
    if not sep or not provider.strip() or not model.strip():
        return None
    return provider.strip(), model.strip()


def resolve_llm(component: str, settings: Settings) -> LLMAssignment:
    """Resolve the provider:model assignment for an oracle component.

    Args:
        component: Component name, e.g. "similarity" or "expansion".
        settings: Application settings.
    """
    target = _split_target(getattr(settings, f"llm_{component}", ""))
    if target is not None:
        return LLMAssignment(*target, source="component")

    phase = phase_of(component)
    if phase is not None:
        target = _split_target(getattr(settings, f"llm_phase_{phase}", ""))
        if target is not None:
            return LLMAssignment(*target, source="phase")

    if settings.llm_default_provider and settings.llm_default_model:
        return LLMAssignment(
            settings.llm_default_provider, settings.llm_default_model, source="default"
        )
    return LLMAssignment(_BUILTIN_PROVIDER, _BUILTIN_MODEL, source="fallback")
