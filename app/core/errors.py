"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    limit: int
    window_ms: int
    retry_after: float
    attempts: int
    category: str
    max_bytes: int
    actual_value: int
    model: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class QuotaExceededError(AppError):
    """Raised when a caller exceeded its request quota for the window."""


class RateLimitStoreError(AppError):
    """Raised when the rate limit store itself fails (never surfaced)."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


class UpstreamError(LLMAppError):
    """A failed upstream AI call.

    ``code`` is one of the failure categories from
    ``app.adapters.llm.failures.FailureCategory``.
    """


class RetriesExhaustedError(LLMAppError):
    """Raised when every attempt of a retried call failed transiently."""
