"""
Best-effort similarity search and storage of past analyses in Qdrant.

Every public method degrades to a no-op (empty result / False) when the index
is disabled or failing; callers never see an exception from here.
"""
from typing import Any, Dict, List, Optional
import logging
import uuid

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from app.core.config import settings
from app.core.monitoring import best_effort_failures
from app.utils.date_utils import utc_now_iso

logger = logging.getLogger(__name__)


def summarize_analysis(analysis: Dict[str, Any], max_concerns: int = 4) -> str:
    """Short text stored alongside the embedding and fed back as context later"""
    skin_type = analysis.get("skinType")
    type_name = skin_type.get("type") if isinstance(skin_type, dict) else None

    concerns = analysis.get("concerns")
    parts = []
    if isinstance(concerns, list):
        for concern in concerns[:max_concerns]:
            if isinstance(concern, dict):
                parts.append(f"{concern.get('name')}({concern.get('severity')})")

    return f"SkinType: {type_name}. Concerns: {', '.join(parts)}"


class VectorService:
    def __init__(
        self,
        url: str = settings.QDRANT_URL,
        api_key: str = settings.QDRANT_API_KEY,
        collection_name: str = settings.QDRANT_COLLECTION,
        dimension: int = settings.EMBEDDING_DIMENSION,
        top_k: int = settings.VECTOR_TOP_K,
        enabled: bool = settings.USE_VECTOR_INDEX,
    ):
        self.url = url
        self.api_key = api_key
        self.collection_name = collection_name
        self.dimension = dimension
        self.top_k = top_k
        self._enabled = enabled
        self._client: Optional[AsyncQdrantClient] = None
        self._collection_ready = False

    @property
    def enabled(self) -> bool:
        return self._enabled and bool(self.url)

    def _get_client(self) -> Optional[AsyncQdrantClient]:
        if not self.enabled:
            return None
        if self._client is None:
            try:
                self._client = AsyncQdrantClient(url=self.url, api_key=self.api_key or None)
            except Exception as e:
                logger.warning(f"Qdrant init failed: {e}")
                best_effort_failures.labels(collaborator="vector_index", operation="init").inc()
                return None
        return self._client

    async def _ensure_collection(self, client: AsyncQdrantClient) -> None:
        if self._collection_ready:
            return
        if not await client.collection_exists(self.collection_name):
            logger.info(f"Creating Qdrant collection '{self.collection_name}' ({self.dimension} dims)")
            await client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
            )
        self._collection_ready = True

    async def search_similar_context(self, embedding: List[float]) -> List[str]:
        """Summaries of the most similar stored analyses"""
        client = self._get_client()
        if client is None or not embedding:
            return []

        try:
            await self._ensure_collection(client)
            response = await client.query_points(
                collection_name=self.collection_name,
                query=embedding,
                limit=self.top_k,
                with_payload=True,
            )
        except Exception as e:
            logger.warning(f"Qdrant query failed: {e}")
            best_effort_failures.labels(collaborator="vector_index", operation="query").inc()
            return []

        summaries = []
        for point in response.points:
            summary = (point.payload or {}).get("summary")
            if summary:
                summaries.append(summary)
        return summaries

    async def store_analysis(
        self,
        embedding: List[float],
        summary: str,
        point_id: Optional[str] = None,
    ) -> bool:
        client = self._get_client()
        if client is None or not embedding:
            return False

        try:
            await self._ensure_collection(client)
            await client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(
                        id=point_id or str(uuid.uuid4()),
                        vector=embedding,
                        payload={
                            "kind": "analysis",
                            "summary": summary,
                            "created_at": utc_now_iso(),
                        },
                    )
                ],
            )
            return True
        except Exception as e:
            logger.warning(f"Qdrant upsert failed: {e}")
            best_effort_failures.labels(collaborator="vector_index", operation="upsert").inc()
            return False

    async def check_health(self) -> bool:
        client = self._get_client()
        if client is None:
            return False

        try:
            await client.get_collections()
            return True
        except Exception as e:
            logger.warning(f"Qdrant health check failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collection_ready = False


vector_service = VectorService()
