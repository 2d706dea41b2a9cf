"""
Main RAG system class that owns every external client.

Clients are constructed once, checked by ``health_check`` and closed by
``shutdown``; the pipeline receives them by injection instead of reaching for
module-level singletons.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from ragcore.config.settings import RAGConfig, get_config, validate_api_keys
from ragcore.core.embeddings import EmbeddingService, create_embedding_service
from ragcore.core.inference import OpenAIInferenceService, TextInferenceService
from ragcore.core.store import HTTPStructuredStore, StructuredStore
from ragcore.core.vectorstore import QdrantVectorIndex, VectorIndexService
from ragcore.utils.logging import get_logger
from ragcore.workflows.rag_pipeline import RAGPipeline, build_pipeline

logger = get_logger(__name__)


class RAGSystem:
    """Service handle for the RAG pipeline and its clients."""

    def __init__(
        self,
        embeddings: EmbeddingService,
        vector_index: VectorIndexService,
        inference: TextInferenceService,
        store: Optional[StructuredStore] = None,
        config: Optional[RAGConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the RAG system.

        Args:
            embeddings: Embedding service
            vector_index: Vector index service
            inference: Text-inference service
            store: Optional structured store
            config: Pipeline configuration
            clock: Wall-clock source for cache TTLs
        """
        self.config = config or get_config()
        self.embeddings = embeddings
        self.vector_index = vector_index
        self.inference = inference
        self.store = store
        self.pipeline: RAGPipeline = build_pipeline(
            embeddings,
            vector_index,
            inference,
            store,
            self.config,
            clock
        )
        self._started = False
        logger.info("✅ RAG system initialized")

    @property
    def cache(self):
        return self.pipeline.cache

    async def startup(self) -> None:
        """
        Prepare external resources before serving.

        Raises:
            VectorIndexUnavailable: If the index cannot be prepared
        """
        if self._started:
            return
        await self.vector_index.ensure_collection()
        self._started = True
        logger.info("🚀 RAG system started")

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform system health check.

        Returns:
            Dictionary with health status
        """
        components: Dict[str, Any] = {
            "vector_index": await self.vector_index.health_check(),
            "embeddings": self.embeddings.is_configured,
            "inference": self.inference.is_configured,
            "structured_store": await self.store.health_check() if self.store is not None else None,
            "cache": self.cache is not None,
        }

        required = ("vector_index", "embeddings", "inference")
        if not all(components[name] for name in required):
            overall = "unhealthy"
        elif components["structured_store"] is False:
            overall = "degraded"
        else:
            overall = "healthy"

        return {
            "overall": overall,
            "components": components,
            "timestamp": str(datetime.now())
        }

    async def shutdown(self) -> None:
        """Drain pending cache writes, then close every client."""
        await self.pipeline.wait_for_background_tasks()

        clients = [self.embeddings, self.inference, self.vector_index, self.store]
        for client in clients:
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.error(f"❌ Error closing {type(client).__name__}: {str(e)}")

        self._started = False
        logger.info("👋 RAG system shut down")


def create_rag_system(config: Optional[RAGConfig] = None) -> RAGSystem:
    """
    Create a RAG system wired to the configured providers.

    Args:
        config: Pipeline configuration

    Returns:
        RAG system instance

    Raises:
        ConfigurationError: If required credentials are missing
    """
    config = config or get_config()
    validate_api_keys(config)

    store = HTTPStructuredStore(config.store) if config.store.url else None
    return RAGSystem(
        embeddings=create_embedding_service("openai", api_key=config.openai_api_key, config=config.embedding),
        vector_index=QdrantVectorIndex(config.vector_index),
        inference=OpenAIInferenceService(config.openai_api_key, config.llm),
        store=store,
        config=config
    )
