"""Wound image analysis service: pre-fills assessment fields from a photo."""

import time
from typing import Any

from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.schemas.image_analysis import ImageAnalysisRequest, ImageAnalysisResult
from app.schemas.wound import ExudateLevel
from app.services.retry_client import RetryClient
from app.services.upstream import log_ai_usage, parse_model_output
from app.utils.data_url import parse_image_data_url

API_NAME = "image_analysis"


def build_prompt() -> str:
    exudate_levels = ", ".join(f'"{level.value}"' for level in ExudateLevel)
    return f"""
Analyze this clinical wound image.
Identify the visually observable characteristics to fill in an assessment form.

Estimate the tissue type percentages (TIME - Tissue); they must add up to 100.
Estimate the exudate level (moisture), using exactly one of: {exudate_levels}.
Identify visual signs of infection (erythema, edema, etc.).
Identify edge and periwound skin characteristics (maceration, hyperkeratosis, etc.).

REQUIRED JSON STRUCTURE:
{{
  "tissue_types": {{"necrotic": <number>, "slough": <number>, "granulation": <number>, "epithelialization": <number>}},
  "exudate": <one of the exudate levels>,
  "infection_signs": ["sign", ...],
  "wound_edges": ["characteristic", ...],
  "periwound_skin": ["characteristic", ...],
  "notes": "short clinical observation summary"
}}

Return only the JSON object, no additional text.
""".strip()


class ImageAnalysisService:
    """Estimates assessment fields from a wound photo using the LLM."""

    def __init__(
        self,
        llm: AbstractLLMClient,
        retry_client: RetryClient,
        *,
        temperature: float | None = None,
        max_image_bytes: int | None = None,
    ) -> None:
        self.llm = llm
        self.retry_client = retry_client
        self.temperature = (
            temperature if temperature is not None else settings.llm.image_analysis_temperature
        )
        self.max_image_bytes = max_image_bytes or settings.app.max_image_size_mb * 1024 * 1024

    def validate_image(self, request: ImageAnalysisRequest) -> str:
        """Validate the wound photo and return the data URL to send.

        Raises:
            ValidationAppError: If the image is malformed, unsupported or too large.
        """
        parse_image_data_url(request.base64_image_url, max_bytes=self.max_image_bytes)
        return request.base64_image_url.strip()

    async def analyze(
        self,
        request: ImageAnalysisRequest,
        caller_id: str,
        *,
        data_url: str | None = None,
    ) -> ImageAnalysisResult:
        """Analyze a wound photo.

        Args:
            request: Request carrying the base64 data URL.
            caller_id: Authenticated caller identity (for usage logs).
            data_url: Output of validate_image() when the caller already ran it.

        Returns:
            Validated ImageAnalysisResult.

        Raises:
            ValidationAppError: If the image is malformed, unsupported or too large.
            UpstreamError: On a terminal model failure.
            RetriesExhaustedError: When transient failures persist.
        """
        if data_url is None:
            data_url = self.validate_image(request)
        prompt = build_prompt()
        schema: dict[str, Any] = ImageAnalysisResult.model_json_schema()

        async def attempt() -> ImageAnalysisResult:
            raw = await self.llm.generate_json(
                prompt,
                schema=schema,
                images=[data_url],
                temperature=self.temperature,
            )
            return parse_model_output(ImageAnalysisResult, raw)

        started = time.perf_counter()
        result, attempts = await self.retry_client.call_with_attempts(
            attempt, operation_name=API_NAME
        )
        log_ai_usage(API_NAME, caller_id, attempts=len(attempts), started=started)
        return result
