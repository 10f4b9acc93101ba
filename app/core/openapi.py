"""OpenAPI customization utilities.

Enriches the generated schema with:
- API Key security scheme (``X-API-Key``), health endpoints exempted
- Tags metadata
- The error responses every AI endpoint can return (429 quota, 502 terminal
  upstream failure, 503 retries exhausted)
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ERROR_ENVELOPE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "message": {"type": "string"},
                "request_id": {"type": "string"},
                "details": {"type": "object"},
            },
            "required": ["code", "message"],
        }
    },
}

AI_ERROR_RESPONSES: Dict[str, str] = {
    "429": "Caller exceeded its request quota for the window (Retry-After header).",
    "502": "The AI provider rejected the request; retrying will not help.",
    "503": "The AI provider kept failing transiently; try again shortly.",
}

TAGS = [
    {"name": "AI", "description": "Treatment suggestions and wound image analysis."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata, security and error docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        components.setdefault("schemas", {}).setdefault("ErrorEnvelope", ERROR_ENVELOPE_SCHEMA)

        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS if tag["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.startswith("/health"):
                    method_obj["security"] = []
                elif "/ai/" in path:
                    responses = method_obj.setdefault("responses", {})
                    for status_code, description in AI_ERROR_RESPONSES.items():
                        responses.setdefault(
                            status_code,
                            {
                                "description": description,
                                "content": {
                                    "application/json": {
                                        "schema": {"$ref": "#/components/schemas/ErrorEnvelope"}
                                    }
                                },
                            },
                        )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
