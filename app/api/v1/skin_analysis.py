from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError
import logging

from app.core.config import settings
from app.core.exceptions import InvalidImageError, InvalidPreferencesError
from app.core.rate_limit import analysis_rate_limit
from app.database import get_database
from app.models.skin_analysis import SkinAnalysisResult
from app.schemas.skin_analysis import AnalysisPreferences, AnalysisRequest, ApiResponse, HealthStatus
from app.services.skin_analysis_service import skin_analysis_service
from app.services.vector_service import vector_service
from app.utils.date_utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter()

IMAGE_FIELD = "image"


class SkinAnalysisEnvelope(ApiResponse):
    data: SkinAnalysisResult


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "preferences"
        problems.append(f"{location}: {item.get('msg')}")
    return "Invalid preferences: " + "; ".join(problems)


async def _read_analysis_request(request: Request) -> AnalysisRequest:
    """Turn the multipart form into an AnalysisRequest, rejecting unknown fields"""
    form = await request.form()

    upload = form.get(IMAGE_FIELD)
    if upload is None or isinstance(upload, str):
        raise InvalidImageError("No image file provided")

    image_bytes = await upload.read()
    if not image_bytes:
        raise InvalidImageError("No image file provided")

    fields = {key: value for key, value in form.multi_items() if key != IMAGE_FIELD}
    try:
        preferences = AnalysisPreferences.model_validate(fields)
    except ValidationError as e:
        raise InvalidPreferencesError(_format_validation_error(e)) from e

    return AnalysisRequest(
        image_bytes=image_bytes,
        mime_type=upload.content_type or "",
        preferences=preferences,
    )


@router.post(
    "/skin/analyze",
    dependencies=[Depends(analysis_rate_limit)],
    responses={200: {"model": SkinAnalysisEnvelope}},
)
async def analyze_skin(request: Request, background_tasks: BackgroundTasks):
    """Analyze an uploaded face photo and return a routine + recommendations"""
    analysis_request = await _read_analysis_request(request)

    report = await skin_analysis_service.analyze(analysis_request)

    # Logging and vector storage must not delay or fail the response
    background_tasks.add_task(skin_analysis_service.record, report, analysis_request)

    return ApiResponse(
        success=True,
        data=report.analysis,
        message="Skin analysis completed",
    ).model_dump(exclude_none=True)


@router.get("/health")
async def health_check():
    """Service health including optional collaborators"""
    vector_index_healthy = await vector_service.check_health()

    if not settings.database_configured:
        database_status = "not_configured"
    elif get_database() is None:
        database_status = "disconnected"
    else:
        database_status = "connected"

    return ApiResponse(
        success=True,
        data=HealthStatus(
            status="healthy",
            vector_index=vector_index_healthy,
            database=database_status,
            timestamp=utc_now_iso(),
        ).model_dump(),
    ).model_dump(exclude_none=True)
