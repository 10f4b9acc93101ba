"""Helpers shared by the services that call the model."""

from __future__ import annotations

import logging
import time
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from app.adapters.llm.failures import FailureCategory
from app.core.errors import UpstreamError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model_output(model_cls: type[ModelT], raw: dict[str, Any]) -> ModelT:
    """Validate raw model JSON against a response schema.

    Output that does not match the schema is an ``internal`` upstream failure,
    which the retry client treats as transient.

    Raises:
        UpstreamError: If validation fails.
    """
    try:
        return model_cls.model_validate(raw)
    except ValidationError as exc:
        raise UpstreamError(
            code=FailureCategory.INTERNAL.value,
            message=f"LLM output did not match {model_cls.__name__}: {exc.error_count()} errors",
        ) from exc


def log_ai_usage(api_name: str, caller_id: str, *, attempts: int, started: float) -> None:
    """Log one successful AI call for usage monitoring.

    Args:
        api_name: Logical API name (e.g., treatment_suggestion).
        caller_id: Caller identity (logged hashed).
        attempts: Attempts the retry client needed.
        started: ``time.perf_counter()`` value taken before the call.
    """
    logger.info(
        "ai.usage",
        extra={
            "api_name": api_name,
            "caller_hash": hash_identifier(caller_id),
            "attempts": attempts,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )
