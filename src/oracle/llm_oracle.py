# src/oracle/llm_oracle.py — v1
"""LLM-backed judgment oracle.

Renders prompt templates from oracle/prompts/, calls the component's LLM
client, extracts JSON from the reply and validates it into the
oracle payload models. Prompts use 1-based numbering; results are returned
with 0-based indices.

Operations in CALLER_RETRIED_OPERATIONS get a single LLM attempt because
their call sites own the retry budget; the rest retry transport errors here.

Any call failure becomes ``Failed``. Credential problems raise
OracleConfigurationError so a misconfigured run stops once instead of
logging a warning per call.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from themetree.config.agents import CALLER_RETRIED_OPERATIONS, OPERATION_COMPONENT_MAP
from themetree.config.settings import Settings
from themetree.core.code import format_numbered, parse_code_lines
from themetree.core.models import (
    ChildAssignment,
    CodeSpan,
    ConsolidatedTheme,
    ExpansionDecision,
)
from themetree.llm.base_client import BaseLLMClient
from themetree.llm.json_extract import clamp_score, extract_json
from themetree.llm.models import Message
from themetree.llm.retry import DEFAULT_RETRY_CONFIGS, LLMRetryExhausted, with_retry
from themetree.oracle.base_oracle import BaseJudgmentOracle
from themetree.oracle.errors import OracleCallError, OracleConfigurationError
from themetree.oracle.models import (
    CrossLevelJudgment,
    DomainClassification,
    DuplicateGroup,
    Failed,
    Judged,
    OracleResult,
    SimilarityJudgment,
    ThemeSynopsis,
)

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).parent / "prompts"

_SYSTEM = (
    "You help organize code-review themes into a clean hierarchy. "
    "Always answer with a single JSON object and nothing else."
)

_RELATIONSHIPS = {"duplicate", "overlap", "related", "distinct"}
_ACTIONS = {"merge_up", "merge_down", "merge_sibling", "keep_separate"}


class LLMJudgmentOracle(BaseJudgmentOracle):
    """Judgment oracle backed by LLM clients.

    Args:
        llm: Default client for every component.
        settings: Application settings (temperature, token limits).
        component_clients: Optional per-component overrides
            (keys: similarity, domain, naming, expansion, dedup, cross_level).
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        settings: Settings,
        component_clients: dict[str, BaseLLMClient] | None = None,
    ) -> None:
        self._llm = llm
        self._settings = settings
        self._component_clients = dict(component_clients or {})
        self._templates: dict[str, str] = {}
        self.input_tokens = 0
        self.output_tokens = 0

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------

    async def compare_similarity(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[SimilarityJudgment]:
        prompt = self._render(
            "similarity_pair",
            theme_a=_describe(theme_a),
            theme_b=_describe(theme_b),
        )
        try:
            data = await self._ask("compare_similarity", prompt)
            return Judged(_parse_similarity(data))
        except OracleCallError as exc:
            return self._failed(exc)

    async def compare_similarity_batch(
        self, pairs: list[tuple[ConsolidatedTheme, ConsolidatedTheme]]
    ) -> OracleResult[dict[int, SimilarityJudgment]]:
        blocks = [
            f"Pair {i}:\n  Theme A:\n{_indent(_describe(a), 4)}\n  Theme B:\n{_indent(_describe(b), 4)}"
            for i, (a, b) in enumerate(pairs, start=1)
        ]
        prompt = self._render("similarity_batch", pairs="\n\n".join(blocks))
        try:
            data = await self._ask("compare_similarity_batch", prompt)
            results: dict[int, SimilarityJudgment] = {}
            for raw in _dicts(data.get("results")):
                index = _to_index(raw.get("pairIndex"), len(pairs))
                if index is None:
                    continue
                results[index] = _parse_similarity(raw)
            return Judged(results)
        except OracleCallError as exc:
            return self._failed(exc)

    # ------------------------------------------------------------------
    # Domains and naming
    # ------------------------------------------------------------------

    async def classify_domains(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[dict[int, DomainClassification]]:
        blocks = [
            f"{i}. {t.name}: {t.description[:300]}" for i, t in enumerate(themes, start=1)
        ]
        prompt = self._render("domain_batch", themes="\n".join(blocks))
        try:
            data = await self._ask("classify_domains", prompt)
            results: dict[int, DomainClassification] = {}
            for raw in _dicts(data.get("results")):
                index = _to_index(raw.get("themeIndex"), len(themes))
                domain = str(raw.get("domain") or "").strip()
                if index is None or not domain:
                    continue
                results[index] = DomainClassification(
                    domain=domain,
                    confidence=clamp_score(raw.get("confidence"), default=0.8),
                )
            return Judged(results)
        except OracleCallError as exc:
            return self._failed(exc)

    async def synthesize_theme(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[ThemeSynopsis]:
        blocks = [f"- {t.name}: {t.description[:300]}" for t in themes]
        prompt = self._render("synthesis", themes="\n".join(blocks))
        try:
            data = await self._ask("synthesize_theme", prompt)
            name = str(data.get("name") or "").strip()
            description = str(data.get("description") or "").strip()
            if not name:
                raise OracleCallError("synthesize_theme", "empty name")
            return Judged(ThemeSynopsis(name=name, description=description))
        except OracleCallError as exc:
            return self._failed(exc)

    # ------------------------------------------------------------------
    # Expansion and deduplication
    # ------------------------------------------------------------------

    async def decide_expansion(
        self, node: ConsolidatedTheme, depth: int
    ) -> OracleResult[ExpansionDecision]:
        code = parse_code_lines(node.code_snippets, node.affected_files)
        prompt = self._render(
            "expansion",
            depth=depth,
            name=node.name,
            description=node.description,
            files=", ".join(node.affected_files) or "(none)",
            code=format_numbered(code, max_lines=self._settings.max_expansion_code_lines),
        )
        try:
            data = await self._ask("decide_expansion", prompt)
            return Judged(_parse_expansion(data))
        except OracleCallError as exc:
            return self._failed(exc)

    async def detect_duplicates(
        self, themes: list[ConsolidatedTheme]
    ) -> OracleResult[list[DuplicateGroup]]:
        blocks = [
            f"{i}. {t.name}\n   Description: {t.description[:300]}\n"
            f"   Files: {', '.join(t.affected_files[:10]) or '(none)'}"
            for i, t in enumerate(themes, start=1)
        ]
        prompt = self._render("duplicates", themes="\n".join(blocks))
        try:
            data = await self._ask("detect_duplicates", prompt)
            groups: list[DuplicateGroup] = []
            for raw in _dicts(data.get("groups") or data.get("duplicateGroups")):
                indices = [
                    idx
                    for idx in (_to_index(v, len(themes)) for v in _as_list(raw.get("themeIndices")))
                    if idx is not None
                ]
                if len(set(indices)) >= 2:
                    groups.append(
                        DuplicateGroup(
                            indices=list(dict.fromkeys(indices)),
                            reasoning=str(raw.get("reasoning") or ""),
                        )
                    )
            return Judged(groups)
        except OracleCallError as exc:
            return self._failed(exc)

    async def compare_cross_level(
        self, theme_a: ConsolidatedTheme, theme_b: ConsolidatedTheme
    ) -> OracleResult[CrossLevelJudgment]:
        prompt = self._render(
            "cross_level",
            level_a=theme_a.level,
            level_b=theme_b.level,
            theme_a=_describe(theme_a),
            theme_b=_describe(theme_b),
        )
        try:
            data = await self._ask("compare_cross_level", prompt)
            relationship = str(data.get("relationshipType") or "distinct")
            action = str(data.get("action") or "keep_separate")
            return Judged(
                CrossLevelJudgment(
                    similarity_score=clamp_score(data.get("similarityScore")),
                    relationship=relationship if relationship in _RELATIONSHIPS else "distinct",
                    action=action if action in _ACTIONS else "keep_separate",
                    confidence=clamp_score(data.get("confidence"), default=0.5),
                    reasoning=str(data.get("reasoning") or ""),
                )
            )
        except OracleCallError as exc:
            return self._failed(exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ask(self, operation: str, prompt: str) -> dict[str, Any]:
        """Call the operation's LLM and return the decoded JSON object."""
        component = OPERATION_COMPONENT_MAP.get(operation, operation)
        llm = self._component_clients.get(component, self._llm)
        # An empty table still classifies auth errors, it just never retries.
        retries = {} if operation in CALLER_RETRIED_OPERATIONS else DEFAULT_RETRY_CONFIGS
        try:
            response = await with_retry(
                llm.complete,
                [Message(role="user", content=prompt)],
                system=_SYSTEM,
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_default_temperature,
                agent=component,
                retry_configs=retries,
            )
        except LLMRetryExhausted as exc:
            if exc.error_type == "auth":
                raise OracleConfigurationError(
                    f"LLM provider rejected the credentials for '{component}': {exc.last_error}"
                ) from exc
            raise OracleCallError(operation, str(exc.last_error)) from exc

        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens

        try:
            return extract_json(response.content)
        except json.JSONDecodeError as exc:
            raise OracleCallError(operation, f"malformed JSON: {exc}") from exc

    def _render(self, template: str, **fields: object) -> str:
        if template not in self._templates:
            self._templates[template] = (_PROMPT_DIR / f"{template}.txt").read_text(
                encoding="utf-8"
            )
        return self._templates[template].format(**fields)

    @staticmethod
    def _failed(exc: OracleCallError) -> Failed:
        logger.warning("Oracle %s", exc)
        return Failed(reason=exc.reason, error=exc)


# === PARSING HELPERS ===


def _parse_similarity(raw: dict[str, Any]) -> SimilarityJudgment:
    should_merge = bool(raw.get("shouldMerge", False))
    if raw.get("combinedScore") is not None:
        combined = clamp_score(raw.get("combinedScore"))
    else:
        confidence = clamp_score(raw.get("confidence"), default=0.5)
        combined = confidence if should_merge else (1.0 - confidence) * 0.3
    return SimilarityJudgment(
        combined_score=combined,
        should_merge=should_merge,
        name_score=_optional_score(raw.get("nameScore")),
        description_score=_optional_score(raw.get("descriptionScore")),
        file_score=_optional_score(raw.get("fileScore")),
        business_score=_optional_score(raw.get("businessScore")),
        reasoning=str(raw.get("reasoning") or ""),
    )


def _parse_expansion(data: dict[str, Any]) -> ExpansionDecision:
    should_expand = bool(data.get("shouldExpand", False))
    children: list[ChildAssignment] = []
    try:
        for raw in _dicts(data.get("children")):
            spans = [
                CodeSpan(
                    file=str(s.get("file") or ""),
                    start_line=int(s.get("startLine")),
                    end_line=int(s.get("endLine", s.get("startLine"))),
                )
                for s in _dicts(raw.get("assignedCode"))
            ]
            children.append(
                ChildAssignment(
                    name=str(raw.get("name") or "").strip() or "Unnamed change",
                    description=str(raw.get("description") or ""),
                    business_value=str(raw.get("businessValue") or ""),
                    technical_purpose=str(raw.get("technicalPurpose") or ""),
                    assigned_code=spans,
                    rationale=str(raw.get("rationale") or ""),
                )
            )
    except (TypeError, ValueError, ValidationError) as exc:
        raise OracleCallError("decide_expansion", f"invalid child assignment: {exc}") from exc

    if should_expand and not children:
        raise OracleCallError("decide_expansion", "expansion requested without children")

    return ExpansionDecision(
        should_expand=should_expand,
        is_atomic=bool(data.get("isAtomic", False)) or not should_expand,
        confidence=clamp_score(data.get("confidence"), default=0.8),
        atomic_reason=str(data.get("atomicReason") or ""),
        children=children if should_expand else [],
    )


def _describe(theme: ConsolidatedTheme, max_code_chars: int = 800) -> str:
    code = "\n".join(theme.code_snippets)
    if len(code) > max_code_chars:
        code = code[:max_code_chars] + "\n..."
    return (
        f"Name: {theme.name}\n"
        f"Description: {theme.description}\n"
        f"Files: {', '.join(theme.affected_files) or '(none)'}\n"
        f"Code:\n{code or '(none)'}"
    )


def _indent(text: str, spaces: int) -> str:
    pad = " " * spaces
    return "\n".join(pad + line for line in text.splitlines())


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _dicts(value: Any) -> list[dict[str, Any]]:
    return [item for item in _as_list(value) if isinstance(item, dict)]


def _to_index(value: Any, size: int) -> int | None:
    """Convert a 1-based index from the model into a valid 0-based one."""
    try:
        index = int(value) - 1
    except (TypeError, ValueError):
        return None
    return index if 0 <= index < size else None


def _optional_score(value: Any) -> float | None:
    return None if value is None else clamp_score(value)
