# src/oracle/models.py — v1
"""Oracle judgment payloads and the tagged result type.

Every oracle operation returns ``Judged[T]`` on success or ``Failed`` with a
reason. Call sites branch with ``isinstance`` (or ``result.ok``) and apply
their own degradation policy to ``Failed``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T")

RelationshipType = Literal["duplicate", "overlap", "related", "distinct"]
CrossLevelAction = Literal["merge_up", "merge_down", "merge_sibling", "keep_separate"]


@dataclass(frozen=True)
class Judged(Generic[T]):
    """Successful oracle call."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """Failed oracle call; the caller decides the fallback."""

    reason: str
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return False


OracleResult = Union[Judged[T], Failed]


# === PAYLOADS ===


class SimilarityJudgment(BaseModel):
    """Pairwise similarity verdict."""

    combined_score: float = Field(ge=0.0, le=1.0)
    should_merge: bool = False
    name_score: float | None = None
    description_score: float | None = None
    file_score: float | None = None
    business_score: float | None = None
    reasoning: str = ""


class DomainClassification(BaseModel):
    """Business domain label for one theme."""

    domain: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class DuplicateGroup(BaseModel):
    """Indices (0-based, into the submitted list) judged to be duplicates."""

    indices: list[int]
    reasoning: str = ""


class ThemeSynopsis(BaseModel):
    """Unified name and description for a merged group."""

    name: str
    description: str


class CrossLevelJudgment(BaseModel):
    """Relationship between two themes at different tree positions."""

    similarity_score: float = Field(ge=0.0, le=1.0)
    relationship: RelationshipType = "distinct"
    action: CrossLevelAction = "keep_separate"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


CONSERVATIVE_CROSS_LEVEL = CrossLevelJudgment(
    similarity_score=0.2,
    relationship="distinct",
    action="keep_separate",
    confidence=0.3,
    reasoning="Oracle unavailable; kept separate",
)
