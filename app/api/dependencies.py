"""FastAPI dependencies resolving services built by the app factory."""

from fastapi import Request

from app.services.image_analysis_service import ImageAnalysisService
from app.services.treatment_service import TreatmentSuggestionService


def get_treatment_service(request: Request) -> TreatmentSuggestionService:
    return request.app.state.treatment_service


def get_image_analysis_service(request: Request) -> ImageAnalysisService:
    return request.app.state.image_analysis_service
