"""Pydantic schemas for wound image auto-fill."""

from pydantic import BaseModel, Field

from app.schemas.wound import ExudateLevel, TissuePercentage


class ImageAnalysisRequest(BaseModel):
    base64_image_url: str = Field(
        ...,
        description="Wound photo as a data URL: data:<mime>;base64,<data>.",
    )


class ImageAnalysisResult(BaseModel):
    """Assessment fields estimated from a wound photo."""

    tissue_types: TissuePercentage = Field(
        ...,
        description="Estimated tissue percentages; they should add up to 100.",
    )
    exudate: ExudateLevel = Field(..., description="Estimated exudate level.")
    infection_signs: list[str] = Field(
        default_factory=list,
        description="Visual signs of infection (e.g., erythema, edema, pus).",
    )
    wound_edges: list[str] = Field(
        default_factory=list,
        description="Edge characteristics (e.g., maceration, epibole, undermining).",
    )
    periwound_skin: list[str] = Field(
        default_factory=list,
        description="Periwound skin characteristics (e.g., maceration, xerosis).",
    )
    notes: str = Field("", description="Short clinical observation summary.")
