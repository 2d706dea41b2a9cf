"""
Qdrant vector index client and operations.

All namespaces share one collection; each point carries a ``namespace``
payload key and every operation filters on it (Qdrant's multitenancy
pattern). Point ids must be UUIDs or integers, so external ids are mapped to
deterministic UUIDs and kept in the payload.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence
from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models
from ragcore.core.vectorstore.base import VectorIndexService, VectorMatch
from ragcore.utils.logging import get_logger
from ragcore.utils.exceptions import (
    APIKeyError,
    VectorIndexUnavailable,
    VectorIndexTimeout
)
from ragcore.utils.decorators import retry_decorator, timing_decorator, with_timeout
from ragcore.config.settings import VectorIndexConfig, get_config

logger = get_logger(__name__)

NAMESPACE_KEY = "namespace"
EXTERNAL_ID_KEY = "external_id"

_DISTANCES = {
    "cosine": models.Distance.COSINE,
    "dot": models.Distance.DOT,
    "euclid": models.Distance.EUCLID,
    "manhattan": models.Distance.MANHATTAN,
}


def _point_id(namespace: str, external_id: str) -> str:
    """Deterministic Qdrant point id for an external id within a namespace."""
    try:
        return str(uuid.UUID(external_id))
    except (ValueError, AttributeError, TypeError):
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{namespace}:{external_id}"))


def build_filter(namespace: str, metadata_filter: Optional[Dict[str, Any]] = None) -> models.Filter:
    """
    Translate a flat metadata filter into a Qdrant filter scoped to a namespace.

    List values match any element; everything else is an exact match.
    """
    conditions = [
        models.FieldCondition(key=NAMESPACE_KEY, match=models.MatchValue(value=namespace))
    ]
    for key, value in (metadata_filter or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            match = models.MatchAny(any=list(value))
        else:
            match = models.MatchValue(value=value)
        conditions.append(models.FieldCondition(key=key, match=match))
    return models.Filter(must=conditions)


class QdrantVectorIndex(VectorIndexService):
    """Async Qdrant-backed vector index."""

    def __init__(
        self,
        config: Optional[VectorIndexConfig] = None,
        client: Optional[AsyncQdrantClient] = None
    ):
        """
        Initialize the Qdrant index.

        Args:
            config: Vector index configuration
            client: Pre-built async client

        Raises:
            APIKeyError: If API key is missing for a cloud deployment
        """
        self.config = config or get_config().vector_index
        self.collection_name = self.config.collection_name
        self.vector_size = self.config.vector_size
        self.timeout = self.config.timeout
        self.metric = self.config.distance.lower()

        if self.metric not in _DISTANCES:
            raise ValueError(f"Unsupported distance metric: {self.config.distance}")

        if client is not None:
            self.client = client
        elif self.config.location:
            self.client = AsyncQdrantClient(location=self.config.location)
        else:
            is_local = self.config.url.startswith(("http://localhost", "http://127.0.0.1"))
            if not is_local and not self.config.api_key:
                raise APIKeyError("Qdrant API key required for cloud deployment")
            self.client = AsyncQdrantClient(url=self.config.url, api_key=self.config.api_key)

        self._collection_ready = False
        logger.info(f"🗃️ Initialized Qdrant index: {self.config.location or self.config.url}")
        logger.info(f"📦 Collection: {self.collection_name} ({self.metric})")

    async def _call(self, awaitable, operation: str):
        try:
            return await with_timeout(awaitable, self.timeout, VectorIndexTimeout, f"qdrant {operation}")
        except VectorIndexTimeout:
            raise
        except Exception as e:
            raise VectorIndexUnavailable(f"Qdrant {operation} failed: {str(e)}") from e

    @retry_decorator(max_retries=3, delay=1.0)
    @timing_decorator
    async def ensure_collection(self) -> None:
        """
        Create the shared collection and its tenant index if missing.

        Raises:
            VectorIndexUnavailable: If collection creation fails
        """
        if self._collection_ready:
            return

        exists = await self._call(
            self.client.collection_exists(self.collection_name),
            "collection_exists"
        )
        if not exists:
            await self._call(
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.vector_size,
                        distance=_DISTANCES[self.metric]
                    )
                ),
                "create_collection"
            )
            await self._call(
                self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=NAMESPACE_KEY,
                    field_schema=models.PayloadSchemaType.KEYWORD
                ),
                "create_payload_index"
            )
            logger.info(f"✅ Created collection '{self.collection_name}' with vector size {self.vector_size}")
        else:
            logger.info(f"📦 Collection '{self.collection_name}' already exists")

        self._collection_ready = True

    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        include_vectors: bool = False
    ) -> List[VectorMatch]:
        """
        Similarity search scoped to a namespace.

        Returns:
            Matches ordered best-first; scores are raw metric values
        """
        response = await self._call(
            self.client.query_points(
                collection_name=self.collection_name,
                query=list(vector),
                limit=top_k,
                query_filter=build_filter(namespace, filter),
                with_payload=True,
                with_vectors=include_vectors
            ),
            "query"
        )

        matches = []
        for point in response.points:
            payload = dict(point.payload or {})
            payload.pop(NAMESPACE_KEY, None)
            external_id = payload.pop(EXTERNAL_ID_KEY, None) or str(point.id)
            point_vector = point.vector if include_vectors and isinstance(point.vector, list) else None
            matches.append(VectorMatch(
                id=external_id,
                score=float(point.score),
                metadata=payload,
                vector=point_vector
            ))

        logger.debug(f"🔍 [{namespace}] Qdrant returned {len(matches)} matches")
        return matches

    async def upsert(
        self,
        namespace: str,
        id: str,
        vector: Sequence[float],
        metadata: Dict[str, Any]
    ) -> None:
        """Insert or replace one point in a namespace."""
        payload = dict(metadata)
        payload[NAMESPACE_KEY] = namespace
        payload[EXTERNAL_ID_KEY] = id
        await self._call(
            self.client.upsert(
                collection_name=self.collection_name,
                points=[models.PointStruct(
                    id=_point_id(namespace, id),
                    vector=list(vector),
                    payload=payload
                )]
            ),
            "upsert"
        )

    async def delete(
        self,
        namespace: str,
        ids: Optional[List[str]] = None,
        delete_all: bool = False,
        filter: Optional[Dict[str, Any]] = None
    ) -> None:
        """Delete by ids, by metadata filter, or every point in the namespace."""
        if ids:
            selector = models.PointIdsList(points=[_point_id(namespace, i) for i in ids])
        elif delete_all or filter:
            selector = models.FilterSelector(filter=build_filter(namespace, filter))
        else:
            return

        await self._call(
            self.client.delete(collection_name=self.collection_name, points_selector=selector),
            "delete"
        )
        logger.info(f"🗑️ Deleted points from namespace '{namespace}'")

    async def stats(self, namespace: str) -> int:
        """Exact point count for a namespace."""
        result = await self._call(
            self.client.count(
                collection_name=self.collection_name,
                count_filter=build_filter(namespace),
                exact=True
            ),
            "count"
        )
        return int(result.count)

    async def health_check(self) -> bool:
        """
        Check if Qdrant is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            await self._call(self.client.get_collections(), "get_collections")
            return True
        except Exception as e:
            logger.error(f"❌ Qdrant health check failed: {str(e)}")
            return False

    async def close(self) -> None:
        await self.client.close()
        logger.info("🔌 Qdrant client closed")
