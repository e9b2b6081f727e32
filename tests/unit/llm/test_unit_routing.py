# tests/unit/llm/test_unit_routing.py — v1
"""Tests for llm/config.py and llm/client_factory.py."""

from __future__ import annotations

import pytest

from themetree.llm.client_factory import UnsupportedProviderError, create_llm_client
from themetree.llm.config import phase_of, resolve_llm


class TestResolveLLM:
    def test_default(self, make_settings):
        a = resolve_llm("similarity", make_settings())
        assert a.provider == "anthropic"
        assert a.source == "default"

    def test_component_wins(self, make_settings):
        s = make_settings(
            llm_expansion="anthropic:claude-opus-4-20250514",
            llm_phase_expansion="anthropic:claude-haiku",
        )
        a = resolve_llm("expansion", s)
        assert a.model == "claude-opus-4-20250514"
        assert a.source == "component"

    def test_phase(self, make_settings):
        a = resolve_llm("dedup", make_settings(llm_phase_expansion="anthropic:claude-haiku"))
        assert a.key == "anthropic:claude-haiku"
        assert a.source == "phase"

    def test_fallback(self, make_settings):
        a = resolve_llm("domain", make_settings(llm_default_provider="", llm_default_model=""))
        assert a.source == "fallback"

    def test_malformed_component_falls_through(self, make_settings):
        s = make_settings(llm_expansion="anthropic", llm_phase_expansion="anthropic:claude-haiku")
        assert resolve_llm("expansion", s).source == "phase"

    def test_phase_of(self):
        assert phase_of("naming") == "consolidation"
        assert phase_of("cross_level") == "expansion"
        assert phase_of("unknown") is None


class TestClientFactory:
    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProviderError):
            create_llm_client("nope", "model")

    def test_anthropic_adapter(self, make_settings):
        client = create_llm_client("anthropic", "claude-x", make_settings(anthropic_api_key="k"))
        assert client.provider_name == "anthropic"
