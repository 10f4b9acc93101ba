"""Pydantic schemas describing lesions and their assessments."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class LesionType(str, Enum):
    PRESSURE_ULCER = "Úlcera por Pressão"
    VENOUS_ULCER = "Úlcera Venosa"
    ARTERIAL_ULCER = "Úlcera Arterial"
    DIABETIC_FOOT = "Pé Diabético"
    SURGICAL_WOUND = "Ferida Cirúrgica"
    STOMA = "Estomia"
    TRAUMATIC = "Traumática"
    OTHER = "Outro"


class ExudateLevel(str, Enum):
    NONE = "Ausente/Seco"
    LOW = "Baixo"
    MODERATE = "Médio"
    HIGH = "Alto"


class ExudateType(str, Enum):
    SEROUS = "Seroso (Fino/Aquoso)"
    TURBID = "Turvo"
    PURULENT = "Purulento (Espesso)"
    BLOODY = "Sanguinolento"
    SEROSANGUINEOUS = "Serossanguinolento (Rosa/Claro)"


class TissuePercentage(BaseModel):
    """Wound bed composition (TIME "Tissue"), in percent."""

    necrotic: float = Field(0, ge=0, le=100, description="Necrotic tissue (black/brown).")
    slough: float = Field(0, ge=0, le=100, description="Slough (yellow/fibrous).")
    granulation: float = Field(0, ge=0, le=100, description="Granulation tissue (red/pink).")
    epithelialization: float = Field(
        0, ge=0, le=100, description="Epithelial tissue (pink edges)."
    )


class Lesion(BaseModel):
    """A tracked wound."""

    type: LesionType = Field(..., description="Lesion classification.")
    location: str = Field(..., min_length=1, description="Anatomical location.")
    start_date: str | None = Field(default=None, description="ISO date the lesion was first seen.")
    previous_treatments: list[str] = Field(
        default_factory=list,
        description="Treatments already tried on this lesion.",
    )


class Assessment(BaseModel):
    """One clinical assessment of a lesion."""

    width_mm: float = Field(..., ge=0)
    height_mm: float = Field(..., ge=0)
    depth_mm: float = Field(..., ge=0)
    tunneling_mm: float | None = Field(default=None, ge=0, description="Tunneling/undermining.")
    exudate: ExudateLevel
    exudate_type: ExudateType | None = None
    tissue_types: TissuePercentage
    infection_signs: list[str] = Field(default_factory=list)
    wound_edges: list[str] = Field(default_factory=list)
    periwound_skin: list[str] = Field(default_factory=list)
    pain_level: int = Field(0, ge=0, le=10)
    notes: str = ""
    image_url: str | None = Field(
        default=None,
        description="Optional wound photo as a base64 data URL.",
    )
