# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

The LLM-backed oracle runs for real (prompt rendering, retries, JSON
extraction, parsing); only the provider client is replaced. Oracle calls
run concurrently, so responses are routed by prompt content rather than
queued in order.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest
from pydantic import BaseModel

from themetree.llm.base_client import BaseLLMClient
from themetree.llm.models import LLMResponse, Message

Responder = Callable[[str], Any]

# Opening words of each prompt template, most specific first.
_ROUTES = [
    ("similarity_batch", "For every numbered pair below"),
    ("similarity_pair", "You are reviewing two themes"),
    ("domain_batch", "Assign each numbered code-change theme"),
    ("synthesis", "are being merged into one"),
    ("expansion", "Decide whether the theme below should be split"),
    ("duplicates", "Find groups of TRUE duplicates"),
    ("cross_level", "Two themes sit at different positions"),
]


class RoutingLLMClient(BaseLLMClient):
    """Mock LLM client answering each prompt kind with a scripted responder.

    A responder receives the prompt text and returns a JSON-serializable
    object, a raw string, or an Exception to raise.
    """

    def __init__(self) -> None:
        self.responders: dict[str, Responder] = {}
        self.calls: Counter[str] = Counter()

    def on(self, kind: str, responder: Responder) -> None:
        self.responders[kind] = responder

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        prompt = messages[-1].content
        kind = next((k for k, marker in _ROUTES if marker in prompt), "unknown")
        self.calls[kind] += 1
        responder = self.responders.get(kind)
        if responder is None:
            raise RuntimeError(f"no scripted response for {kind} prompt")
        answer = responder(prompt)
        if isinstance(answer, Exception):
            raise answer
        content = answer if isinstance(answer, str) else json.dumps(answer)
        return LLMResponse(
            content=content, input_tokens=50, output_tokens=len(content) // 4,
            model="mock-model", provider="mock", latency_ms=10,
        )

    @property
    def provider_name(self) -> str:
        return "mock"


@pytest.fixture
def mock_llm() -> RoutingLLMClient:
    return RoutingLLMClient()
