from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.dependencies import get_image_analysis_service, get_treatment_service
from app.core.auth import authenticate_caller
from app.core.rate_limit import RateLimitedEndpoint, RateLimitGuard, get_rate_limit_guard
from app.schemas.image_analysis import ImageAnalysisRequest, ImageAnalysisResult
from app.schemas.treatment import TreatmentSuggestion, TreatmentSuggestionRequest
from app.services.image_analysis_service import ImageAnalysisService
from app.services.treatment_service import TreatmentSuggestionService

router = APIRouter(tags=["AI"])


@router.post(
    "/ai/treatment-suggestion",
    response_model=TreatmentSuggestion,
)
async def treatment_suggestion(
    payload: TreatmentSuggestionRequest,
    caller_id: Annotated[str, Depends(authenticate_caller)],
    rate_limit: Annotated[
        RateLimitGuard, Depends(get_rate_limit_guard(RateLimitedEndpoint.TREATMENT))
    ],
    service: Annotated[TreatmentSuggestionService, Depends(get_treatment_service)],
) -> TreatmentSuggestion:
    """Suggest a dressing protocol for the current assessment of a lesion.

    The body and attached photo are validated first; only a valid request is
    counted against the caller's quota before the model is called. Transient
    model failures are retried with backoff; domain errors are rendered by the
    global exception handlers (400 invalid image, 429 quota, 502 terminal
    upstream failure, 503 retries exhausted).
    """
    images = service.validate_images(payload)
    await rate_limit.admit(caller_id)
    return await service.suggest(payload, caller_id, images=images)


@router.post(
    "/ai/image-analysis",
    response_model=ImageAnalysisResult,
)
async def image_analysis(
    payload: ImageAnalysisRequest,
    caller_id: Annotated[str, Depends(authenticate_caller)],
    rate_limit: Annotated[
        RateLimitGuard, Depends(get_rate_limit_guard(RateLimitedEndpoint.IMAGE_ANALYSIS))
    ],
    service: Annotated[ImageAnalysisService, Depends(get_image_analysis_service)],
) -> ImageAnalysisResult:
    """Estimate assessment fields (tissue, exudate, edges, skin) from a wound photo."""
    data_url = service.validate_image(payload)
    await rate_limit.admit(caller_id)
    return await service.analyze(payload, caller_id, data_url=data_url)
