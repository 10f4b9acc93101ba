"""Pydantic schemas for treatment suggestions."""

from pydantic import BaseModel, Field

from app.schemas.wound import Assessment, Lesion


class TreatmentSuggestionRequest(BaseModel):
    lesion: Lesion
    current_assessment: Assessment
    patient_info: str | None = Field(
        default=None,
        description=(
            "Free-text patient context: allergies, comorbidities, medications, "
            "previous treatments."
        ),
    )


class TreatmentSuggestion(BaseModel):
    """Dressing protocol suggested for the current assessment."""

    cleaning: str = Field(
        ...,
        description="Recommended cleaning method and solution (e.g., Saline, PHMB).",
    )
    primary_dressing: str = Field(
        ...,
        description="The main dressing to be applied in contact with the wound bed.",
    )
    secondary_dressing: str = Field(
        ...,
        description="The secondary dressing to secure the primary or manage exudate.",
    )
    frequency: str = Field(
        ...,
        description="How often the dressing should be changed.",
    )
    rationale: str = Field(
        ...,
        description=(
            "Brief clinical explanation for this choice based on tissue type, "
            "exudate and visual analysis."
        ),
    )
