# tests/unit/config/test_unit_settings.py — v1
"""Tests for config/settings.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from themetree.config.settings import ConfigurationError, Settings, load_settings


class TestDefaults:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.similarity_threshold == 0.7
        assert s.prefilter_name_threshold == 0.1
        assert s.min_themes_for_parent == 2
        assert s.max_expansion_depth == 20
        assert s.max_expansion_code_lines == 2000
        assert s.min_themes_for_batch_dedup == 5
        assert s.min_themes_for_second_pass_dedup == 10
        assert s.cross_level_threshold == 0.95
        assert s.min_themes_for_cross_level_dedup == 20
        assert s.expansion_enabled is True

    def test_ttl_helpers(self):
        s = Settings(_env_file=None, similarity_cache_ttl_minutes=2)
        assert s.similarity_cache_ttl_s == 120.0
        assert s.cross_level_cache_ttl_s == 30 * 60.0

    def test_frozen(self):
        s = Settings(_env_file=None)
        with pytest.raises(ValidationError):
            s.similarity_threshold = 0.5  # type: ignore[misc]


class TestValidation:
    @pytest.mark.parametrize("value", [-0.1, 1.5])
    def test_threshold_out_of_range(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, similarity_threshold=value)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, similarity_concurrency=0)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, domain_max_retries=-1)

    def test_min_themes_for_parent(self):
        with pytest.raises(ConfigurationError, match="MIN_THEMES_FOR_PARENT"):
            Settings(_env_file=None, min_themes_for_parent=0)

    def test_max_depth(self):
        with pytest.raises(ConfigurationError, match="MAX_EXPANSION_DEPTH"):
            Settings(_env_file=None, max_expansion_depth=0)

    def test_max_code_lines(self):
        with pytest.raises(ConfigurationError, match="MAX_EXPANSION_CODE_LINES"):
            Settings(_env_file=None, max_expansion_code_lines=0)

    def test_errors_are_collected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=None, max_expansion_depth=0, cross_level_size_ratio=1.0)
        assert "MAX_EXPANSION_DEPTH" in str(exc_info.value)
        assert "CROSS_LEVEL_SIZE_RATIO" in str(exc_info.value)


class TestEnvironment:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.8")
        monkeypatch.setenv("SKIP_SIBLING_DEDUP", "true")
        s = Settings(_env_file=None)
        assert s.similarity_threshold == 0.8
        assert s.skip_sibling_dedup is True

    def test_load_settings_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = load_settings(expansion_enabled=False)
        assert s.expansion_enabled is False
