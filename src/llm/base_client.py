# src/llm/base_client.py — v1
"""Abstract LLM client interface used by the LLM-backed judgment oracle."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from themetree.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (e.g. anthropic)."""
