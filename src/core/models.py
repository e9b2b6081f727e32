# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
Theme and ConsolidatedTheme are frozen: stages build new nodes with
``model_copy(update=...)`` instead of mutating existing ones.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConsolidationMethod = Literal["single", "merge", "hierarchy", "expansion"]


def make_pair_key(id_a: str, id_b: str) -> str:
    """Order-independent key for a pair of theme ids (lower id first)."""
    if id_a <= id_b:
        return f"{id_a}::{id_b}"
    return f"{id_b}::{id_a}"


# === THEMES ===


class Theme(BaseModel):
    """Flat change theme produced by the upstream diff analysis."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    affected_files: list[str] = Field(default_factory=list)
    code_snippets: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    context: str = ""

    @field_validator("affected_files")
    @classmethod
    def dedupe_files(cls, v: list[str]) -> list[str]:
        """Affected files form an ordered set."""
        return list(dict.fromkeys(f for f in v if f))


class ConsolidatedTheme(Theme):
    """Tree node after merge, hierarchy or expansion processing."""

    level: int = Field(default=0, ge=0)
    parent_id: str | None = None
    child_themes: list[ConsolidatedTheme] = Field(default_factory=list)
    source_themes: list[str] = Field(default_factory=list)
    consolidation_method: ConsolidationMethod = "single"
    is_atomic: bool | None = None
    is_expanded: bool | None = None
    business_impact: str = ""
    technical_purpose: str = ""

    @classmethod
    def from_theme(cls, theme: Theme) -> ConsolidatedTheme:
        """Wrap an input theme as an unmerged root node."""
        return cls(
            id=theme.id,
            name=theme.name,
            description=theme.description,
            affected_files=list(theme.affected_files),
            code_snippets=list(theme.code_snippets),
            confidence=theme.confidence,
            context=theme.context,
            level=0,
            source_themes=[theme.id],
            consolidation_method="single",
        )

    @property
    def is_evaluated(self) -> bool:
        """True once the expansion engine has decided on this node."""
        return self.is_atomic is not None or self.is_expanded is not None


ConsolidatedTheme.model_rebuild()


# === SIMILARITY ===


class SimilarityRecord(BaseModel):
    """Symmetric similarity judgment between two themes."""

    theme_a: str
    theme_b: str
    combined_score: float = Field(ge=0.0, le=1.0)
    name_score: float | None = None
    description_score: float | None = None
    file_score: float | None = None
    business_score: float | None = None
    should_merge: bool = False
    reasoning: str = ""
    source: Literal["oracle", "cache", "prefilter", "fallback"] = "oracle"

    @property
    def pair_key(self) -> str:
        return make_pair_key(self.theme_a, self.theme_b)


# === EXPANSION ===


class CodeSpan(BaseModel):
    """Inclusive range of numbered changed lines within one file."""

    file: str
    start_line: int
    end_line: int

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.file}:{self.start_line}"
        return f"{self.file}:{self.start_line}-{self.end_line}"


class ChildAssignment(BaseModel):
    """Oracle-proposed child of a node, with the parent code it owns."""

    name: str
    description: str = ""
    business_value: str = ""
    technical_purpose: str = ""
    assigned_code: list[CodeSpan] = Field(default_factory=list)
    rationale: str = ""


class ExpansionDecision(BaseModel):
    """Oracle verdict on whether a node should be decomposed."""

    should_expand: bool
    is_atomic: bool = False
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    atomic_reason: str = ""
    children: list[ChildAssignment] = Field(default_factory=list)
