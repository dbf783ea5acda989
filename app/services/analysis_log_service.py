from typing import Any, Dict, List, Optional
import logging

from app.core.config import settings
from app.core.monitoring import best_effort_failures
from app.database import ANALYSIS_LOG_COLLECTION, get_database
from app.models.skin_analysis import AnalysisLogMetadata, SkinAnalysisLogModel

logger = logging.getLogger(__name__)


class AnalysisLogService:
    """Append-only log of completed analyses. Failures never reach the caller."""

    def __init__(self, database_getter=get_database, embedding_dimension: int = settings.EMBEDDING_DIMENSION):
        self._get_database = database_getter
        self.embedding_dimension = embedding_dimension

    def log_analysis(
        self,
        analysis: Dict[str, Any],
        metadata: AnalysisLogMetadata,
        embedding: Optional[List[float]] = None,
        retrieved_context: Optional[List[str]] = None,
    ) -> bool:
        """
        Insert one log document. Returns True when written.
        """
        database = self._get_database()
        if database is None:
            logger.debug("Analysis log skipped: database not connected")
            return False

        embedding = embedding or []
        if embedding and len(embedding) != self.embedding_dimension:
            logger.warning(
                f"Dropping embedding of length {len(embedding)} from analysis log "
                f"(expected {self.embedding_dimension})"
            )
            embedding = []

        try:
            document = SkinAnalysisLogModel(
                image_embedding=embedding,
                analysis=analysis,
                retrieved_context=retrieved_context or [],
                metadata=metadata,
            )
            database[ANALYSIS_LOG_COLLECTION].insert_one(document.model_dump())
            return True
        except Exception as e:
            logger.warning(f"Failed to save analysis log: {e}")
            best_effort_failures.labels(collaborator="analysis_log", operation="insert").inc()
            return False


analysis_log_service = AnalysisLogService()
