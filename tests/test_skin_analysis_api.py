import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from httpx import AsyncClient

from app.core.exceptions import ProviderTimeoutError, ProviderUnavailableError, UnparseableResponseError
from app.core.rate_limit import RateLimiter, analysis_rate_limit
from app.main import app
from app.services.analysis_orchestrator import AnalysisOutcome, AttemptOptions
from app.services.image_processing_service import ImageProcessingService
from app.services.skin_analysis_service import AnalysisReport, SkinAnalysisService

ANALYZE_URL = "/api/skin/analyze"


@pytest.fixture
def mock_analysis_service(rich_analysis):
    """Stand-in for the pipeline so the endpoint is tested in isolation"""
    mock = Mock()
    mock.analyze = AsyncMock(return_value=AnalysisReport(
        outcome=AnalysisOutcome(analysis=rich_analysis, completion_calls=1),
    ))
    mock.record = AsyncMock()
    with patch("app.api.v1.skin_analysis.skin_analysis_service", mock):
        yield mock


def _upload(data: bytes, mime_type: str = "image/jpeg"):
    return {"image": ("face.jpg", data, mime_type)}


@pytest.mark.asyncio
async def test_analyze_success(client: AsyncClient, mock_analysis_service, jpeg_bytes, rich_analysis):
    """A valid upload returns the analysis in the success envelope"""
    response = await client.post(
        ANALYZE_URL,
        files=_upload(jpeg_bytes),
        data={"goals": "clear acne", "age": "27", "valueFocus": "best_value", "fragranceFree": "true"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == rich_analysis
    assert "error" not in body

    request = mock_analysis_service.analyze.await_args.args[0]
    assert request.image_bytes == jpeg_bytes
    assert request.mime_type == "image/jpeg"
    assert request.preferences.goals == "clear acne"
    assert request.preferences.age == 27
    assert request.preferences.fragrance_free is True
    mock_analysis_service.record.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_image(client: AsyncClient, mock_analysis_service):
    response = await client.post(ANALYZE_URL, data={"goals": "glow"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No image file provided"}
    mock_analysis_service.analyze.assert_not_awaited()


@pytest.mark.asyncio
async def test_retired_budget_field_is_rejected(client: AsyncClient, mock_analysis_service, jpeg_bytes):
    response = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes), data={"budget": "low"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error.startswith("Invalid preferences")
    assert "budget" in error
    mock_analysis_service.analyze.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", [{"age": "7"}, {"age": "abc"}, {"valueFocus": "cheapest"}, {"version": "1"}])
async def test_invalid_preferences(client: AsyncClient, mock_analysis_service, jpeg_bytes, fields):
    response = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes), data=fields)
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("error, status_code", [
    (UnparseableResponseError("Model returned unparseable JSON"), 502),
    (ProviderUnavailableError("OpenAI connection failed: reset"), 503),
    (ProviderTimeoutError("OpenAI call timed out after 60s"), 504),
])
async def test_pipeline_failures(client: AsyncClient, mock_analysis_service, jpeg_bytes, error, status_code):
    """Failures map to status codes with a generic message"""
    mock_analysis_service.analyze = AsyncMock(side_effect=error)

    response = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes))

    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["error"] == type(error).public_message
    assert str(error) not in body["error"]
    mock_analysis_service.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_full_pipeline_with_richness_repair(client: AsyncClient, fake_client_factory, minimal_rules,
                                                  thin_analysis, rich_json, jpeg_bytes):
    """Endpoint through the real pipeline with a scripted provider"""
    fake_client = fake_client_factory([json.dumps(thin_analysis), rich_json])
    vectors = Mock()
    vectors.search_similar_context = AsyncMock(return_value=[])
    vectors.store_analysis = AsyncMock(return_value=True)
    log_service = Mock()
    log_service.log_analysis = Mock(return_value=True)

    service = SkinAnalysisService(
        completion_client=fake_client,
        image_processor=ImageProcessingService(max_bytes=10 * 1024 * 1024, max_dimension=2048, quality=85),
        vectors=vectors,
        log_service=log_service,
        rules=minimal_rules,
        options=AttemptOptions(),
        enable_embeddings=True,
    )

    with patch("app.api.v1.skin_analysis.skin_analysis_service", service):
        response = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes), data={"sensitiveMode": "true"})

    assert response.status_code == 200
    assert len(response.json()["data"]["routine"]["AM"]) == 5
    assert len(fake_client.calls) == 2
    log_service.log_analysis.assert_called_once()
    vectors.store_analysis.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalid_image_through_pipeline(client: AsyncClient, fake_client_factory, minimal_rules):
    fake_client = fake_client_factory([])
    service = SkinAnalysisService(
        completion_client=fake_client,
        image_processor=ImageProcessingService(max_bytes=1024, max_dimension=2048, quality=85),
        vectors=Mock(),
        log_service=Mock(),
        rules=minimal_rules,
        enable_embeddings=False,
    )

    with patch("app.api.v1.skin_analysis.skin_analysis_service", service):
        response = await client.post(ANALYZE_URL, files=_upload(b"\x00" * 2048))

    assert response.status_code == 400
    assert response.json()["error"].startswith("Image too large")
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_rate_limit_returns_429(client: AsyncClient, mock_analysis_service, jpeg_bytes):
    app.dependency_overrides[analysis_rate_limit] = RateLimiter(requests=1, window=60, redis_getter=lambda: None)

    first = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes))
    second = await client.post(ANALYZE_URL, files=_upload(jpeg_bytes))

    assert first.status_code == 200
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) >= 1
    assert second.json()["success"] is False


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    with patch("app.api.v1.skin_analysis.vector_service") as mock_vectors:
        mock_vectors.check_health = AsyncMock(return_value=False)
        response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["vector_index"] is False
    assert data["database"] in ("not_configured", "disconnected", "connected")
    assert data["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["analyze"] == "POST /api/skin/analyze"
