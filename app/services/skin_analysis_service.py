from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import time

from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import ProviderUnavailableError
from app.core.monitoring import best_effort_failures
from app.models.skin_analysis import AnalysisLogMetadata
from app.schemas.skin_analysis import AnalysisRequest
from app.services.analysis_log_service import AnalysisLogService, analysis_log_service
from app.services.analysis_orchestrator import AnalysisOrchestrator, AnalysisOutcome, AttemptOptions
from app.services.image_processing_service import ImageProcessingService, image_processing_service
from app.services.openai_service import OpenAIService, openai_service
from app.services.prompt_builder import PROMPT_VERSION, build_analysis_prompt
from app.services.richness_validator import RichnessRules
from app.services.vector_service import VectorService, summarize_analysis, vector_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisReport:
    """Everything produced for one request, handed to the best-effort recorders"""
    outcome: AnalysisOutcome
    embedding: List[float] = field(default_factory=list)
    retrieved_context: List[str] = field(default_factory=list)
    processing_time_ms: int = 0

    @property
    def analysis(self) -> Dict[str, Any]:
        return self.outcome.analysis


class SkinAnalysisService:
    def __init__(
        self,
        completion_client: OpenAIService = openai_service,
        image_processor: ImageProcessingService = image_processing_service,
        vectors: VectorService = vector_service,
        log_service: AnalysisLogService = analysis_log_service,
        rules: Optional[RichnessRules] = None,
        options: Optional[AttemptOptions] = None,
        enable_embeddings: bool = settings.ENABLE_EMBEDDINGS,
    ):
        self.completion_client = completion_client
        self.image_processor = image_processor
        self.vectors = vectors
        self.log_service = log_service
        self.rules = rules or RichnessRules.from_settings(settings)
        self.options = options or AttemptOptions.from_settings(settings)
        self.enable_embeddings = enable_embeddings

    async def _image_embedding(self, image_data_uri: str) -> List[float]:
        if not self.enable_embeddings:
            return []
        try:
            return await self.completion_client.embed_image(image_data_uri)
        except ProviderUnavailableError as e:
            # Embeddings are optional; the analysis proceeds without them
            logger.warning(f"Image embedding failed: {e}")
            best_effort_failures.labels(collaborator="embedding", operation="embed_image").inc()
            return []

    async def analyze(self, request: AnalysisRequest) -> AnalysisReport:
        """
        Normalize the photo, gather optional context and run the completion loop.

        Raises InvalidImageError, UnparseableResponseError or
        ProviderUnavailableError; optional steps never raise.
        """
        start_time = time.monotonic()

        image = await run_in_threadpool(self.image_processor.normalize, request.image_bytes, request.mime_type)
        image_data_uri = image.data_uri

        embedding = await self._image_embedding(image_data_uri)

        retrieved_context: List[str] = []
        if embedding:
            retrieved_context = await self.vectors.search_similar_context(embedding)

        prompt = build_analysis_prompt(
            request.preferences,
            retrieved_context,
            self.rules,
            max_context_entries=settings.CONTEXT_MAX_ENTRIES,
            max_context_chars=settings.CONTEXT_ENTRY_MAX_CHARS,
        )

        orchestrator = AnalysisOrchestrator(self.completion_client, self.rules, self.options)
        outcome = await orchestrator.run(prompt, image_data_uri)

        return AnalysisReport(
            outcome=outcome,
            embedding=embedding,
            retrieved_context=retrieved_context,
            processing_time_ms=int((time.monotonic() - start_time) * 1000),
        )

    def _log_metadata(self, report: AnalysisReport, request: AnalysisRequest) -> AnalysisLogMetadata:
        prefs = request.preferences
        return AnalysisLogMetadata(
            model=getattr(self.completion_client, "model", settings.OPENAI_MODEL),
            vision_model=getattr(self.completion_client, "vision_model", None),
            embedding_model=getattr(self.completion_client, "embedding_model", None) if report.embedding else None,
            prompt_version=PROMPT_VERSION,
            temperature=self.options.first.temperature,
            processing_time_ms=report.processing_time_ms,
            goals=prefs.goals,
            age=prefs.age,
            value_focus=prefs.value_focus,
            fragrance_free=prefs.fragrance_free,
            pregnancy_safe=prefs.pregnancy_safe,
            sensitive_mode=prefs.sensitive_mode,
            completion_calls=report.outcome.completion_calls,
            repair=report.outcome.repair,
            rich_enough=report.outcome.rich_enough,
        )

    async def record(self, report: AnalysisReport, request: AnalysisRequest) -> None:
        """
        Write the analysis to the log sink and the vector index. Never raises.
        """
        try:
            await run_in_threadpool(
                self.log_service.log_analysis,
                report.analysis,
                self._log_metadata(report, request),
                report.embedding,
                report.retrieved_context,
            )
        except Exception as e:
            logger.warning(f"Analysis log step failed: {e}")

        if report.embedding:
            stored = await self.vectors.store_analysis(report.embedding, summarize_analysis(report.analysis))
            if not stored:
                logger.debug("Vector index did not store the analysis")


skin_analysis_service = SkinAnalysisService()
