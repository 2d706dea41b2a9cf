"""
Health check endpoints.

Reports the reachability of every client the RAG system owns.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from ragcore.api.models import HealthResponse
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns 503 when a required component is down.
    """
    health = await request.app.state.rag_service.health_check()
    body = HealthResponse(
        status=health["overall"],
        components=health["components"],
        timestamp=health["timestamp"]
    )
    if health["overall"] == "unhealthy":
        logger.warning(f"⚠️ Health check unhealthy: {health['components']}")
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
