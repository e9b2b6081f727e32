# tests/unit/api/test_unit_facade.py — v1
"""Tests for api.facade — public entry point."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from themetree.api.facade import consolidate, parse_themes
from themetree.oracle.errors import OracleConfigurationError
from themetree.tracking.call_logger import CallLogger


class TestParseThemes:
    def test_valid(self):
        themes = parse_themes([{"id": "t1", "name": "Login", "affected_files": ["a.py", "a.py"]}])
        assert themes[0].affected_files == ["a.py"]

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_themes([{"name": "missing id"}])


class TestConsolidate:
    @pytest.mark.asyncio
    async def test_with_explicit_oracle(self, fake_oracle, settings, sample_themes):
        call_logger = CallLogger()
        result = await consolidate(
            sample_themes, settings=settings, oracle=fake_oracle, call_logger=call_logger
        )
        assert result.integrity.is_valid
        assert call_logger.total_calls == result.metrics.oracle_calls

    @pytest.mark.asyncio
    async def test_builds_oracle_from_settings(
        self, monkeypatch, fake_oracle, settings, sample_themes
    ):
        built = []

        def fake_create(s):
            built.append(s)
            return fake_oracle

        monkeypatch.setattr("themetree.oracle.factory.create_oracle", fake_create)
        await consolidate(sample_themes, settings=settings)
        assert built == [settings]

    @pytest.mark.asyncio
    async def test_missing_credentials(self, make_settings, sample_themes):
        settings = make_settings(anthropic_api_key="")
        with pytest.raises(OracleConfigurationError):
            await consolidate(sample_themes, settings=settings)
