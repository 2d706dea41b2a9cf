"""
System endpoints for cache inspection and maintenance.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from ragcore.api.models import CacheClearResponse, CacheMetricsResponse
from ragcore.api.services import RAGService, get_rag_service
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/cache", response_model=CacheMetricsResponse)
async def get_cache_metrics(service: RAGService = Depends(get_rag_service)):
    """Semantic cache counters."""
    return CacheMetricsResponse(**service.cache_metrics())


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    tool_id: Optional[str] = None,
    scope_id: Optional[str] = None,
    service: RAGService = Depends(get_rag_service)
):
    """
    Clear cached responses.

    Args:
        tool_id: Only clear entries for this tool
        scope_id: Only clear entries for this scope
    """
    if service.rag_system.cache is None:
        raise HTTPException(status_code=404, detail="Semantic cache is disabled")

    cleared = await service.clear_cache(tool_id=tool_id, scope_id=scope_id)
    if not cleared:
        raise HTTPException(status_code=500, detail="Failed to clear cache")

    logger.info(f"🧹 Cache cleared (tool_id={tool_id}, scope_id={scope_id})")
    return CacheClearResponse(
        cleared=cleared,
        tool_id=tool_id,
        scope_id=scope_id,
        timestamp=str(datetime.now())
    )
