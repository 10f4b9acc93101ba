"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import logging
from io import StringIO

from app.core.logging import JsonFormatter, SensitiveDataFilter, hash_identifier, redact


def test_sensitive_filter_redacts_api_keys():
    """Ensure SensitiveDataFilter redacts API key fields."""
    
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )
    
    output = stream.getvalue()
    
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_clinical_payloads():
    """Ensure patient context and wound photos are redacted."""
    
    logger = logging.getLogger("test_clinical_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "ai_event",
        extra={
            "patient_info": "Maria Silva, allergic to iodine, diabetic",
            "base64_image_url": "data:image/png;base64,iVBORw0KGgo=",
            "redis_url": "redis://:hunter2@cache:6379/0",
            "attempts": 2,
        },
    )
    
    output = stream.getvalue()
    
    assert "Maria Silva" not in output
    assert "iVBORw0KGgo" not in output
    assert "hunter2" not in output
    assert "[REDACTED]" in output
    assert "attempts" in output


def test_sensitive_filter_allows_safe_fields():
    """Verify safe fields pass through unmodified."""
    
    logger = logging.getLogger("test_safe_fields")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "safe_event",
        extra={
            "request_id": "req-123",
            "route": "/v1/ai/treatment-suggestion",
            "status": 200,
            "duration_ms": 150.5,
        },
    )
    
    output = stream.getvalue()
    
    assert "req-123" in output
    assert "/v1/ai/treatment-suggestion" in output
    assert "200" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure nested sensitive fields are redacted."""
    
    logger = logging.getLogger("test_nested")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    
    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-api-key": "secret-key",
                "user-agent": "pytest",
            },
            "safe_data": {
                "count": 5,
                "type": "test",
            },
        },
    )
    
    output = stream.getvalue()
    
    assert "secret-key" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output
    assert "test" in output


def test_hash_identifier_is_stable_and_short():
    """Identifiers are logged as a short stable digest."""

    digest = hash_identifier("test-api-key-123")

    assert digest == hash_identifier("test-api-key-123")
    assert len(digest) == 16
    assert "test-api-key" not in digest


def test_inline_data_urls_are_elided_from_any_value():
    """Base64 wound photos inside messages or nested values never reach the output."""

    logger = logging.getLogger("test_data_url_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    logger.info(
        "upstream rejected data:image/jpeg;base64,/9j/4AAQSkZJRg==",
        extra={"error_msg": ["bad image data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="]},
    )

    output = stream.getvalue()

    assert "/9j/4AAQSkZJRg" not in output
    assert "iVBORw0KGgo" not in output
    assert "data:image/jpeg;base64,[REDACTED]" in output


def test_redact_helper_is_case_insensitive():
    assert redact({"Patient_Info": "diabetic", "count": 1}) == {
        "Patient_Info": "[REDACTED]",
        "count": 1,
    }
