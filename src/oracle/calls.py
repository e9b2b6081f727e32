# src/oracle/calls.py — v1
"""Retrying wrapper turning ``Failed`` oracle results into retryable errors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from themetree.llm.retry import uniform_retry, with_retry
from themetree.oracle.errors import OracleCallError, OracleConfigurationError
from themetree.oracle.models import Failed, OracleResult

T = TypeVar("T")


async def call_with_retry(
    call: Callable[[], Awaitable[OracleResult[T]]],
    *,
    operation: str,
    max_retries: int,
    base_delay_s: float,
) -> T:
    """Invoke an oracle operation, retrying on ``Failed`` results.

    Raises:
        LLMRetryExhausted: When the retry budget is spent.
        OracleConfigurationError: Immediately, without retrying.
    """

    async def attempt() -> T:
        result = await call()
        if isinstance(result, Failed):
            raise OracleCallError(operation, result.reason)
        return result.value

    return await with_retry(
        attempt,
        agent=operation,
        retry_configs=uniform_retry(max_retries, base_delay_s),
        fatal=(OracleConfigurationError,),
    )
