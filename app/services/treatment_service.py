"""Treatment suggestion service.

Turns a lesion, its current assessment and optional patient context into a
dressing protocol suggested by the model. The model call runs under the
retry client; the result is validated against TreatmentSuggestion.
"""

import time
from typing import Any

from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.schemas.treatment import TreatmentSuggestion, TreatmentSuggestionRequest
from app.schemas.wound import Assessment, Lesion
from app.services.retry_client import RetryClient
from app.services.upstream import log_ai_usage, parse_model_output
from app.utils.data_url import parse_image_data_url

API_NAME = "treatment_suggestion"


def _truncate(text: str, max_chars: int) -> tuple[str, bool]:
    """Truncate text to max_chars if needed.

    Returns:
        Tuple of (truncated_text, was_truncated).
    """
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars], True


def _join_or(values: list[str], default: str) -> str:
    return ", ".join(values) if values else default


def build_prompt(lesion: Lesion, assessment: Assessment, patient_info: str | None) -> str:
    """Build the wound-care prompt for a treatment suggestion.

    Args:
        lesion: Lesion being treated.
        assessment: Current assessment of the lesion.
        patient_info: Optional patient context (allergies, history).

    Returns:
        Formatted prompt string for the model.
    """
    tissue = assessment.tissue_types
    previous = _join_or(lesion.previous_treatments, "None recorded")
    exudate_type = assessment.exudate_type.value if assessment.exudate_type else "Not specified"

    return f"""
Act as a senior wound, ostomy and continence (WOC) nurse specialist.
Analyze the IMAGE (if provided) and the CLINICAL DATA below and suggest the best treatment (dressings).

=== PATIENT DATA AND CONTEXT ===
{patient_info or "Not provided"}

=== CURRENT LESION ===
- Type: {lesion.type.value}
- Location: {lesion.location}
- Dimensions: {assessment.width_mm:g}mm x {assessment.height_mm:g}mm x {assessment.depth_mm:g}mm
- Tunneling/undermining: {assessment.tunneling_mm or 0:g}mm
- Previous treatments on this lesion: {previous}

=== WOUND BED ASSESSMENT (TIME) ===
- Tissue: necrotic {tissue.necrotic:g}%, slough {tissue.slough:g}%, granulation {tissue.granulation:g}%, epithelialization {tissue.epithelialization:g}%
- Infection/inflammation: {_join_or(assessment.infection_signs, "No evident signs")}
- Moisture (exudate): level {assessment.exudate.value}, type {exudate_type}
- Edges: {_join_or(assessment.wound_edges, "Intact")}

=== PERIWOUND SKIN ===
- Characteristics: {_join_or(assessment.periwound_skin, "Intact")}

PAIN (0-10): {assessment.pain_level}
NURSING NOTES: {assessment.notes or "None"}

=== INSTRUCTIONS ===
1. ALLERGIES: Check the patient data carefully. If allergies are listed (e.g., silver, iodine, latex, sulfa), do NOT suggest products containing those components.
2. HISTORY: Consider the previous treatments. If a previous treatment failed, suggest an alternative or justify keeping it with changes in frequency/application.
3. VISUAL ANALYSIS: If an image is attached, use it to confirm biofilm, maceration or necrosis not reported in the numeric data.
4. PROTOCOL: Provide cleaning, primary dressing, secondary dressing and change frequency.

REQUIRED JSON STRUCTURE:
{{
  "cleaning": "cleaning method and solution",
  "primary_dressing": "dressing in contact with the wound bed",
  "secondary_dressing": "cover dressing or exudate management",
  "frequency": "dressing change frequency",
  "rationale": "brief clinical rationale"
}}

Return only the JSON object, no additional text.
""".strip()


class TreatmentSuggestionService:
    """Suggests dressing protocols using the LLM.

    Attributes:
        llm: LLM client adapter for generating structured JSON.
        retry_client: Retry wrapper applied to every model call.
    """

    def __init__(
        self,
        llm: AbstractLLMClient,
        retry_client: RetryClient,
        *,
        temperature: float | None = None,
        max_patient_info_chars: int | None = None,
        max_image_bytes: int | None = None,
    ) -> None:
        self.llm = llm
        self.retry_client = retry_client
        self.temperature = (
            temperature if temperature is not None else settings.llm.treatment_temperature
        )
        self.max_patient_info_chars = (
            max_patient_info_chars or settings.app.max_patient_info_chars
        )
        self.max_image_bytes = max_image_bytes or settings.app.max_image_size_mb * 1024 * 1024

    def validate_images(self, request: TreatmentSuggestionRequest) -> list[str]:
        """Validate the attached photo, if any, and return the images to send.

        Raises:
            ValidationAppError: If the attached image is invalid.
        """
        image_url = request.current_assessment.image_url
        if not image_url:
            return []
        parse_image_data_url(image_url, max_bytes=self.max_image_bytes)
        return [image_url.strip()]

    async def suggest(
        self,
        request: TreatmentSuggestionRequest,
        caller_id: str,
        *,
        images: list[str] | None = None,
    ) -> TreatmentSuggestion:
        """Suggest a treatment for the current assessment.

        Args:
            request: Lesion, current assessment and optional patient context.
            caller_id: Authenticated caller identity (for usage logs).
            images: Output of validate_images() when the caller already ran
                it; validated here otherwise.

        Returns:
            Validated TreatmentSuggestion.

        Raises:
            ValidationAppError: If the attached image is invalid.
            UpstreamError: On a terminal model failure.
            RetriesExhaustedError: When transient failures persist.
        """
        patient_info = request.patient_info
        if patient_info:
            patient_info, _ = _truncate(patient_info, self.max_patient_info_chars)

        if images is None:
            images = self.validate_images(request)

        prompt = build_prompt(request.lesion, request.current_assessment, patient_info)
        schema: dict[str, Any] = TreatmentSuggestion.model_json_schema()

        async def attempt() -> TreatmentSuggestion:
            raw = await self.llm.generate_json(
                prompt,
                schema=schema,
                images=images or None,
                temperature=self.temperature,
            )
            return parse_model_output(TreatmentSuggestion, raw)

        started = time.perf_counter()
        suggestion, attempts = await self.retry_client.call_with_attempts(
            attempt, operation_name=API_NAME
        )
        log_ai_usage(API_NAME, caller_id, attempts=len(attempts), started=started)
        return suggestion
