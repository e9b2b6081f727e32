# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for every threshold, batch limit and feature toggle
used by the engine. A Settings instance is frozen and passed explicitly to
each component; nothing below the entry point reads the environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # === LLM PROVIDERS ===
    llm_default_provider: str = "anthropic"
    llm_default_model: str = "claude-sonnet-4-20250514"
    llm_default_temperature: float = 0.2
    llm_max_tokens: int = 4096

    anthropic_api_key: str = ""

    # Per-phase LLM assignment
    llm_phase_consolidation: str = ""
    llm_phase_expansion: str = ""

    # Per-component LLM assignment (highest priority)
    llm_similarity: str = ""
    llm_domain: str = ""
    llm_naming: str = ""
    llm_expansion: str = ""
    llm_dedup: str = ""
    llm_cross_level: str = ""

    # === Pairwise similarity ===
    similarity_threshold: float = 0.7
    prefilter_name_threshold: float = 0.1
    similarity_cache_ttl_minutes: float = 60.0
    similarity_concurrency: int = 3
    similarity_max_retries: int = 2
    retry_base_delay_s: float = 1.0

    # === Domain hierarchy ===
    domain_concurrency: int = 3
    domain_max_retries: int = 2
    min_themes_for_parent: int = 2

    # === Expansion ===
    expansion_enabled: bool = True
    max_expansion_depth: int = 20
    max_expansion_code_lines: int = 2000

    # === Sibling deduplication ===
    skip_sibling_dedup: bool = False
    skip_second_pass_dedup: bool = False
    min_themes_for_batch_dedup: int = 5
    min_themes_for_second_pass_dedup: int = 10

    # === Cross-level deduplication ===
    cross_level_dedup_enabled: bool = True
    cross_level_threshold: float = 0.95
    cross_level_name_threshold: float = 0.3
    cross_level_size_ratio: float = 10.0
    allow_overlap_merging: bool = True
    min_themes_for_cross_level_dedup: int = 20
    cross_level_concurrency: int = 5
    cross_level_max_retries: int = 3
    cross_level_cache_ttl_minutes: float = 30.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "similarity_threshold",
        "prefilter_name_threshold",
        "cross_level_threshold",
        "cross_level_name_threshold",
    )
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        """Thresholds are scores and must lie in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        return v

    @field_validator(
        "similarity_concurrency", "domain_concurrency", "cross_level_concurrency"
    )
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("concurrency limit must be >= 1")
        return v

    @field_validator(
        "similarity_max_retries", "domain_max_retries", "cross_level_max_retries"
    )
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry budget must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.min_themes_for_parent < 1:
            errors.append("MIN_THEMES_FOR_PARENT must be >= 1")

        if self.max_expansion_depth < 1:
            errors.append("MAX_EXPANSION_DEPTH must be >= 1")

        if self.max_expansion_code_lines < 1:
            errors.append("MAX_EXPANSION_CODE_LINES must be >= 1")

        if self.min_themes_for_second_pass_dedup < 2:
            errors.append("MIN_THEMES_FOR_SECOND_PASS_DEDUP must be >= 2")

        if self.cross_level_size_ratio <= 1.0:
            errors.append("CROSS_LEVEL_SIZE_RATIO must be > 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def similarity_cache_ttl_s(self) -> float:
        return self.similarity_cache_ttl_minutes * 60.0

    @property
    def cross_level_cache_ttl_s(self) -> float:
        return self.cross_level_cache_ttl_minutes * 60.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
