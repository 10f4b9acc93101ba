"""Failure categories for upstream AI calls.

Every failure coming back from the model provider is reduced to one of a
small closed set of categories. The retry client and the HTTP layer only
ever look at the category, so provider vocabulary stays inside the adapters
and this module.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum


class FailureCategory(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission-denied"
    INVALID_ARGUMENT = "invalid-argument"
    FAILED_PRECONDITION = "failed-precondition"
    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline-exceeded"
    RESOURCE_EXHAUSTED = "resource-exhausted"
    INTERNAL = "internal"
    OVERLOADED = "overloaded"
    UNKNOWN = "unknown"


RETRYABLE_CATEGORIES: frozenset[FailureCategory] = frozenset(
    {
        FailureCategory.UNAVAILABLE,
        FailureCategory.DEADLINE_EXCEEDED,
        FailureCategory.RESOURCE_EXHAUSTED,
        FailureCategory.INTERNAL,
        FailureCategory.OVERLOADED,
    }
)

# Checked in order; the first match wins. Bare status numbers only count next
# to an HTTP status context, so "(char 500)" or request ids do not match.
_MESSAGE_INDICATORS: tuple[tuple[re.Pattern[str], FailureCategory], ...] = (
    (re.compile(r"RESOURCE_EXHAUSTED"), FailureCategory.RESOURCE_EXHAUSTED),
    (re.compile(r"DEADLINE_EXCEEDED"), FailureCategory.DEADLINE_EXCEEDED),
    (re.compile(r"overloaded", re.IGNORECASE), FailureCategory.OVERLOADED),
    (re.compile(r"UNAVAILABLE"), FailureCategory.OVERLOADED),
    (
        re.compile(
            r"\b(?:http|status(?:\s+code)?|error\s+code)\s*[:=]?\s*50[03]\b"
            r"|\b50[03]\s+(?:service\s+unavailable|internal\s+server\s+error)\b",
            re.IGNORECASE,
        ),
        FailureCategory.OVERLOADED,
    ),
)

_USER_MESSAGES: dict[FailureCategory, str] = {
    FailureCategory.UNAUTHENTICATED: (
        "The AI service rejected our credentials. Contact the administrator."
    ),
    FailureCategory.PERMISSION_DENIED: (
        "The AI service denied access to this resource. Contact the administrator."
    ),
    FailureCategory.INVALID_ARGUMENT: (
        "The AI service could not process this request. Check the submitted data and image."
    ),
    FailureCategory.FAILED_PRECONDITION: (
        "The AI service is not configured. Contact the administrator."
    ),
    FailureCategory.UNAVAILABLE: (
        "The AI service is temporarily overloaded. Please try again shortly."
    ),
    FailureCategory.OVERLOADED: (
        "The AI service is temporarily overloaded. Please try again shortly."
    ),
    FailureCategory.DEADLINE_EXCEEDED: (
        "The AI service timed out. Please try again."
    ),
    FailureCategory.RESOURCE_EXHAUSTED: (
        "The AI service quota was exceeded. Please wait a moment before retrying."
    ),
}


def _category_from_code(code: object) -> FailureCategory | None:
    if isinstance(code, FailureCategory):
        return code
    if not isinstance(code, str):
        return None
    normalized = code.strip().lower().replace("_", "-")
    try:
        return FailureCategory(normalized)
    except ValueError:
        return None


def categorize_failure(exc: BaseException) -> FailureCategory:
    """Map any exception raised by an upstream call to a failure category.

    Resolution order:
    1. A structured ``code`` attribute naming a known category, unless it is
       the generic ``internal`` code, which may be refined by the message.
    2. Overload/quota/deadline indicators in the message text.
    3. ``internal`` codes and timeout exception types.
    4. Anything else is ``unknown`` (treated as terminal).

    Args:
        exc: Exception raised by the upstream call.

    Returns:
        FailureCategory: The matching category.
    """
    from_code = _category_from_code(getattr(exc, "code", None))
    if from_code is not None and from_code not in (
        FailureCategory.INTERNAL,
        FailureCategory.UNKNOWN,
    ):
        return from_code

    message = str(exc)
    for pattern, category in _MESSAGE_INDICATORS:
        if pattern.search(message):
            return category

    if from_code is FailureCategory.INTERNAL:
        return FailureCategory.INTERNAL

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return FailureCategory.DEADLINE_EXCEEDED

    return FailureCategory.UNKNOWN


def is_retryable(category: FailureCategory) -> bool:
    """Return True when retrying a failure of this category can help."""
    return category in RETRYABLE_CATEGORIES


def user_message_for(category: FailureCategory, exc: BaseException | None = None) -> str:
    """Caller-facing message for a failure category.

    Unrecognized categories fall back to a generic message that includes the
    underlying error text.
    """
    known = _USER_MESSAGES.get(category)
    if known is not None:
        return known
    detail = str(exc) if exc is not None else ""
    if detail:
        return f"The AI request failed: {detail}"
    return "The AI request failed. Please try again."
