# tests/unit/oracle/test_unit_llm_oracle.py — v1
"""Tests for oracle/llm_oracle.py with a mocked LLM client."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from themetree.llm.base_client import BaseLLMClient
from themetree.llm.models import LLMResponse
from themetree.oracle.errors import OracleConfigurationError
from themetree.oracle.llm_oracle import LLMJudgmentOracle
from themetree.oracle.models import Failed, Judged


def _llm(*contents: str | Exception) -> AsyncMock:
    llm = AsyncMock(spec=BaseLLMClient)
    llm.complete.side_effect = [
        c if isinstance(c, Exception) else LLMResponse(
            content=c, input_tokens=10, output_tokens=5,
            model="m", provider="test", latency_ms=1,
        )
        for c in contents
    ]
    return llm


def _oracle(settings, *contents) -> tuple[LLMJudgmentOracle, AsyncMock]:
    llm = _llm(*contents)
    return LLMJudgmentOracle(llm, settings), llm


class TestSimilarity:
    @pytest.mark.asyncio
    async def test_pair(self, settings, make_theme):
        oracle, _ = _oracle(
            settings, json.dumps({"combinedScore": 0.92, "shouldMerge": True, "nameScore": 1.4})
        )
        result = await oracle.compare_similarity(make_theme("a"), make_theme("b"))
        assert isinstance(result, Judged)
        assert result.value.combined_score == 0.92
        assert result.value.name_score == 1.0
        assert oracle.input_tokens == 10

    @pytest.mark.asyncio
    async def test_confidence_mapping_without_combined_score(self, settings, make_theme):
        oracle, _ = _oracle(settings, json.dumps({"shouldMerge": False, "confidence": 0.9}))
        result = await oracle.compare_similarity(make_theme("a"), make_theme("b"))
        assert result.value.combined_score == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_batch_indices_are_zero_based(self, settings, make_theme):
        payload = {
            "results": [
                {"pairIndex": 2, "combinedScore": 0.8, "shouldMerge": True},
                {"pairIndex": 9, "combinedScore": 0.8},
                "garbage",
            ]
        }
        oracle, _ = _oracle(settings, json.dumps(payload))
        pairs = [(make_theme("a"), make_theme("b")), (make_theme("c"), make_theme("d"))]
        result = await oracle.compare_similarity_batch(pairs)
        assert list(result.value) == [1]

    @pytest.mark.asyncio
    async def test_malformed_json_fails(self, settings, make_theme):
        oracle, _ = _oracle(settings, "not json at all")
        result = await oracle.compare_similarity(make_theme("a"), make_theme("b"))
        assert isinstance(result, Failed)
        assert "malformed JSON" in result.reason

    @pytest.mark.asyncio
    async def test_client_error_fails(self, settings, make_theme):
        oracle, _ = _oracle(settings, Exception("connection reset"))
        result = await oracle.compare_similarity(make_theme("a"), make_theme("b"))
        assert isinstance(result, Failed)

    @pytest.mark.asyncio
    async def test_auth_error_raises(self, settings, make_theme):
        oracle, _ = _oracle(settings, Exception("401 invalid x-api-key"))
        with pytest.raises(OracleConfigurationError):
            await oracle.compare_similarity(make_theme("a"), make_theme("b"))


class TestDomainsAndNaming:
    @pytest.mark.asyncio
    async def test_classify_domains(self, settings, make_theme):
        payload = {"results": [{"themeIndex": 1, "domain": "User Interface"}, {"themeIndex": 2}]}
        oracle, _ = _oracle(settings, json.dumps(payload))
        result = await oracle.classify_domains([make_theme("a"), make_theme("b")])
        assert {k: v.domain for k, v in result.value.items()} == {0: "User Interface"}

    @pytest.mark.asyncio
    async def test_classify_domain_single(self, settings, make_theme):
        payload = {"results": [{"themeIndex": 1, "domain": "API Services"}]}
        oracle, _ = _oracle(settings, json.dumps(payload))
        result = await oracle.classify_domain(make_theme("a"))
        assert result.value.domain == "API Services"

    @pytest.mark.asyncio
    async def test_synthesize_requires_name(self, settings, make_theme):
        oracle, _ = _oracle(settings, json.dumps({"name": "", "description": "x"}))
        result = await oracle.synthesize_theme([make_theme("a"), make_theme("b")])
        assert isinstance(result, Failed)


class TestExpansion:
    @pytest.mark.asyncio
    async def test_decision_with_children(self, settings, make_theme):
        payload = {
            "shouldExpand": True,
            "children": [
                {
                    "name": "Validate",
                    "assignedCode": [{"file": "a.py", "startLine": 1, "endLine": 2}],
                },
                {"name": "Wire", "assignedCode": [{"file": "a.py", "startLine": 3}]},
            ],
        }
        oracle, llm = _oracle(settings, json.dumps(payload))
        node = make_theme("n", files=["a.py"], code_snippets=["+x\n+y\n+z"])
        result = await oracle.decide_expansion(node, 0)
        decision = result.value
        assert decision.should_expand is True
        assert decision.is_atomic is False
        assert str(decision.children[1].assigned_code[0]) == "a.py:3"
        prompt = llm.complete.await_args.args[0][0].content
        assert "    1 | +x" in prompt

    @pytest.mark.asyncio
    async def test_atomic(self, settings, make_theme):
        oracle, _ = _oracle(settings, json.dumps({"shouldExpand": False, "isAtomic": True}))
        result = await oracle.decide_expansion(make_theme("n"), 3)
        assert result.value.is_atomic is True
        assert result.value.children == []

    @pytest.mark.asyncio
    async def test_expand_without_children_fails(self, settings, make_theme):
        oracle, _ = _oracle(settings, json.dumps({"shouldExpand": True, "children": []}))
        assert isinstance(await oracle.decide_expansion(make_theme("n"), 0), Failed)

    @pytest.mark.asyncio
    async def test_bad_span_fails(self, settings, make_theme):
        payload = {"shouldExpand": True, "children": [{"name": "x", "assignedCode": [{"file": "a"}]}]}
        oracle, _ = _oracle(settings, json.dumps(payload))
        assert isinstance(await oracle.decide_expansion(make_theme("n"), 0), Failed)


class TestDuplicatesAndCrossLevel:
    @pytest.mark.asyncio
    async def test_detect_duplicates(self, settings, make_theme):
        payload = {"groups": [{"themeIndices": [1, 3, 3], "reasoning": "same"}, {"themeIndices": [2]}]}
        oracle, _ = _oracle(settings, json.dumps(payload))
        result = await oracle.detect_duplicates([make_theme(i) for i in "abc"])
        assert [g.indices for g in result.value] == [[0, 2]]

    @pytest.mark.asyncio
    async def test_cross_level_sanitizes_enums(self, settings, make_theme):
        payload = {"similarityScore": 0.97, "relationshipType": "weird", "action": "merge_up"}
        oracle, _ = _oracle(settings, json.dumps(payload))
        result = await oracle.compare_cross_level(make_theme("a"), make_theme("b", level=1))
        assert result.value.relationship == "distinct"
        assert result.value.action == "merge_up"
        assert result.value.similarity_score == 0.97


class TestRetryOwnership:
    @pytest.mark.asyncio
    async def test_engine_retried_operation_makes_one_attempt(self, settings, make_theme):
        oracle, llm = _oracle(
            settings,
            TimeoutError("request timed out"),
            json.dumps({"combinedScore": 0.5}),
        )
        result = await oracle.compare_similarity(make_theme("a"), make_theme("b"))
        assert isinstance(result, Failed)
        assert llm.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_expansion_retries_transport_errors(self, settings, make_theme, monkeypatch):
        monkeypatch.setattr("themetree.llm.retry._compute_delay", lambda config, attempt: 0.0)
        oracle, llm = _oracle(
            settings,
            TimeoutError("request timed out"),
            json.dumps({"shouldExpand": False, "isAtomic": True}),
        )
        result = await oracle.decide_expansion(make_theme("a"), 0)
        assert isinstance(result, Judged)
        assert result.value.is_atomic is True
        assert llm.complete.await_count == 2
