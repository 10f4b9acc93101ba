"""Retry with capped exponential backoff and jitter for upstream AI calls.

The wrapped operation is attempted once, then retried only while its failure
is classified as transient, up to ``max_retries`` retries. The wait before
retry ``i`` (0-based) is ``min(base_delay_ms * 2**i, max_delay_ms)`` plus a
uniform jitter of up to ``jitter_ratio`` of that delay. Waiting is an
``asyncio.sleep``, so only the request coroutine is suspended.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from app.adapters.llm.failures import (
    FailureCategory,
    categorize_failure,
    is_retryable,
    user_message_for,
)
from app.core.errors import RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (default: 3, so up to
            4 attempts in total).
        base_delay_ms: Delay before the first retry in milliseconds.
        max_delay_ms: Cap for the exponential part of the delay.
        jitter_ratio: Jitter ceiling as a fraction of the capped delay.

    Example:
        >>> policy = RetryPolicy(max_retries=3, base_delay_ms=1000)
        >>> policy.backoff_ms(2)
        4000
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10_000
    jitter_ratio: float = 0.3

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 1:
            raise ValueError("base_delay_ms must be >= 1")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be between 0 and 1")

    def backoff_ms(self, attempt: int) -> int:
        """Capped exponential delay for a 0-based attempt index, without jitter."""
        return min(self.base_delay_ms * (2**attempt), self.max_delay_ms)

    def compute_delay_ms(self, attempt: int, rng: random.Random) -> float:
        """Delay to wait after the failure of ``attempt``, jitter included.

        The result lies in ``[backoff, backoff * (1 + jitter_ratio)]``.
        """
        delay = self.backoff_ms(attempt)
        return delay + rng.uniform(0, self.jitter_ratio * delay)


@dataclass(frozen=True)
class RetryAttempt:
    """One try of the upstream call.

    Attributes:
        index: 0-based attempt index.
        error: Failure raised by this try, None when it succeeded.
        delay_ms: Wait scheduled before the next try, None when there is none.
    """

    index: int
    error: BaseException | None = None
    delay_ms: float | None = None


class RetryClient:
    """Runs zero-argument async operations under a RetryPolicy."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "upstream_call",
    ) -> T:
        """Run ``operation`` with retries and return its result."""
        result, _ = await self.call_with_attempts(operation, operation_name=operation_name)
        return result

    async def call_with_attempts(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "upstream_call",
    ) -> tuple[T, list[RetryAttempt]]:
        """Run ``operation`` with retries.

        Args:
            operation: Zero-argument coroutine function performing one try.
            operation_name: Name used in log events.

        Returns:
            Tuple of the successful result and the attempts made, the last
            one being the successful try.

        Raises:
            RetriesExhaustedError: When every attempt failed transiently. The
                last failure is chained as ``__cause__``.
            Exception: The failure itself, unchanged, when it is terminal.
        """
        attempts: list[RetryAttempt] = []
        max_retries = self.policy.max_retries

        for index in range(max_retries + 1):
            try:
                result = await operation()
            except Exception as exc:
                category = categorize_failure(exc)

                if not is_retryable(category):
                    attempts.append(RetryAttempt(index=index, error=exc))
                    logger.warning(
                        "retry.terminal_failure",
                        extra={
                            "operation": operation_name,
                            "attempt": index,
                            "category": category.value,
                            "error_type": type(exc).__name__,
                            "error_msg": str(exc),
                        },
                    )
                    raise

                if index >= max_retries:
                    attempts.append(RetryAttempt(index=index, error=exc))
                    logger.error(
                        "retry.exhausted",
                        extra={
                            "operation": operation_name,
                            "attempts": len(attempts),
                            "category": category.value,
                            "error_type": type(exc).__name__,
                            "error_msg": str(exc),
                        },
                    )
                    raise self._exhausted(category, exc, len(attempts)) from exc

                delay_ms = self.policy.compute_delay_ms(index, self._rng)
                attempts.append(RetryAttempt(index=index, error=exc, delay_ms=delay_ms))
                logger.warning(
                    "retry.scheduled",
                    extra={
                        "operation": operation_name,
                        "attempt": index,
                        "max_retries": max_retries,
                        "category": category.value,
                        "delay_ms": round(delay_ms, 1),
                        "error_msg": str(exc),
                    },
                )
                await self._sleep(delay_ms / 1000)
                continue

            attempts.append(RetryAttempt(index=index))
            if index > 0:
                logger.info(
                    "retry.recovered",
                    extra={"operation": operation_name, "attempt": index},
                )
            return result, attempts

        # range() always yields at least one attempt
        raise AssertionError("unreachable")

    @staticmethod
    def _exhausted(
        category: FailureCategory,
        exc: BaseException,
        attempts: int,
    ) -> RetriesExhaustedError:
        return RetriesExhaustedError(
            code="retries_exhausted",
            message=user_message_for(category, exc),
            details={
                "attempts": attempts,
                "category": category.value,
            },
        )
