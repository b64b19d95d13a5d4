"""Caller-side retries across several ``CircuitBreaker.execute`` calls.

Breakers never retry on their own. Retrying a rejection would only hammer an
open circuit, so the predicate here retries operation failures and timeouts
but gives up immediately on ``CircuitOpenError`` and invalid usage.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_never,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base

from breakwater.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    InvalidOperationError,
    Operation,
)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and backoff boundaries."""

    attempts: int | None
    min_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("attempts must be >= 1 when provided")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")


def _is_retryable(error: BaseException) -> bool:
    return not isinstance(error, (CircuitOpenError, InvalidOperationError))


def retry_unless_circuit_open() -> retry_base:
    """Retry operation failures, never breaker rejections."""
    return retry_if_exception(_is_retryable)


def build_exponential_jitter_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with exponential jitter backoff."""
    stop = (
        stop_never if policy.attempts is None else stop_after_attempt(policy.attempts)
    )
    wait = wait_exponential_jitter(
        initial=policy.min_seconds,
        max=policy.max_seconds,
    )
    options: dict[str, Any] = {}
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(
        retry=retry,
        wait=wait,
        stop=stop,
        reraise=reraise,
        **options,
    )


async def execute_with_retry(
    breaker: CircuitBreaker,
    operation: Operation[T],
    *,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> T:
    """Run ``operation`` through ``breaker`` with backoff between attempts.

    Each attempt is a separate ``execute`` call, so every failure is booked by
    the breaker. Once the breaker rejects a call the last error is raised
    without further attempts.
    """
    retrying = build_exponential_jitter_retrying(
        retry=retry_unless_circuit_open(),
        policy=policy,
        sleep=sleep,
        before_sleep=before_sleep,
    )
    return await retrying(breaker.execute, operation)
