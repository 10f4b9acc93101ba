"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 403, 429, 500, 502, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.adapters.llm.failures import FailureCategory, user_message_for
from app.core.config import settings
from app.core.errors import (
    AppError,
    AuthenticationAppError,
    LLMAppError,
    QuotaExceededError,
    RetriesExhaustedError,
    UpstreamError,
    ValidationAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status code."""
    if isinstance(exc, ValidationAppError):
        return 400
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, QuotaExceededError):
        return 429
    if isinstance(exc, RetriesExhaustedError):
        return 503
    if isinstance(exc, UpstreamError):
        return 502
    if isinstance(exc, LLMAppError):
        return 500
    return 400


def quota_headers(exc: QuotaExceededError) -> dict[str, str] | None:
    """Retry-After and X-RateLimit-* headers for a 429, unless disabled."""
    details = exc.details or {}
    if not settings.rate_limit.include_headers or "retry_after" not in details:
        return None
    headers = {"Retry-After": str(details["retry_after"]), "X-RateLimit-Remaining": "0"}
    if "limit" in details:
        headers["X-RateLimit-Limit"] = str(details["limit"])
    return headers


def _public_message(exc: AppError) -> str:
    # Upstream messages carry provider text; callers get the category message.
    if isinstance(exc, UpstreamError):
        try:
            category = FailureCategory(exc.code)
        except ValueError:
            category = FailureCategory.UNKNOWN
        return user_message_for(category, exc)
    return exc.message


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": _public_message(exc),
        "request_id": get_request_id(),
    }

    if exc.details:
        error_content["details"] = exc.details

    headers: dict[str, str] | None = None
    if isinstance(exc, QuotaExceededError):
        headers = quota_headers(exc)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
