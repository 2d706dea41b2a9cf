"""
RAG service for API operations.

Thin layer between the HTTP endpoints and the RAG system handle.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import HTTPException, Request
from ragcore.config.models import ChatMessage, PipelineOptions, RAGResponse
from ragcore.core.system import RAGSystem
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)


class RAGService:
    """Service class for RAG operations."""

    def __init__(self, rag_system: Optional[RAGSystem] = None):
        """
        Initialize RAG service.

        Args:
            rag_system: RAG system instance
        """
        self.rag_system = rag_system
        logger.info("🔧 RAG service initialized")

    def set_rag_system(self, rag_system: Optional[RAGSystem]) -> None:
        """Set the RAG system instance."""
        self.rag_system = rag_system
        if rag_system is not None:
            logger.info("✅ RAG system set in service")

    def is_ready(self) -> bool:
        """Check if the service is ready."""
        return self.rag_system is not None

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check."""
        if not self.is_ready():
            return {
                "overall": "unhealthy",
                "components": {"rag_system": False},
                "timestamp": str(datetime.now())
            }
        return await self.rag_system.health_check()

    async def query(
        self,
        query: str,
        scope_id: str,
        conversation_history: Optional[List[ChatMessage]] = None,
        options: Optional[PipelineOptions] = None
    ) -> RAGResponse:
        """
        Answer a single query.

        Endpoints reach this through ``get_rag_service``, which only hands
        out a ready service.
        """
        logger.info(f"❓ Processing query: {query[:50]}...")
        return await self.rag_system.pipeline.rag_query(
            query,
            scope_id,
            options,
            conversation_history
        )

    def cache_metrics(self) -> Dict[str, Any]:
        """Semantic cache counters, or an empty dict when caching is off."""
        cache = self.rag_system.cache if self.is_ready() else None
        if cache is None:
            return {"enabled": False, "metrics": {}}
        return {"enabled": True, "metrics": cache.metrics()}

    async def clear_cache(self, tool_id: Optional[str] = None, scope_id: Optional[str] = None) -> bool:
        """Clear cached responses, optionally by tool and scope."""
        cache = self.rag_system.cache if self.is_ready() else None
        if cache is None:
            return False
        return await cache.clear(tool_id=tool_id, scope_id=scope_id)


def get_rag_service(request: Request) -> RAGService:
    """
    FastAPI dependency returning the app's ready RAG service.

    Raises:
        HTTPException: 503 if the RAG system is not initialized
    """
    service: RAGService = request.app.state.rag_service
    if not service.is_ready():
        raise HTTPException(status_code=503, detail="RAG system not initialized")
    return service
