"""
Query endpoints for RAG operations.

Handles question-answering requests.
"""

from fastapi import APIRouter, Depends, HTTPException
from ragcore.api.models import QueryRequest
from ragcore.api.services import RAGService, get_rag_service
from ragcore.config.models import RAGResponse
from ragcore.utils.exceptions import (
    RAGException,
    SecurityRejection,
    SynthesisError,
    UpstreamTimeout,
    UpstreamUnavailable
)
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/query", tags=["query"])


@router.post("", response_model=RAGResponse)
async def query_rag(request: QueryRequest, service: RAGService = Depends(get_rag_service)):
    """
    Answer a question with the RAG pipeline.

    Args:
        request: Query request

    Returns:
        Grounded answer with sources, confidence and metadata
    """
    try:
        return await service.query(
            request.query,
            request.scope_id,
            request.conversation_history,
            request.options
        )

    except SecurityRejection as e:
        logger.warning(f"🛡️ Query rejected: {e.violations}")
        raise HTTPException(
            status_code=400,
            detail={"error": str(e), "violations": e.violations}
        )
    except SynthesisError as e:
        logger.error(f"❌ Answer generation failed: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))
    except UpstreamTimeout as e:
        logger.error(f"⏱️ Upstream timeout: {str(e)}")
        raise HTTPException(status_code=504, detail=str(e))
    except UpstreamUnavailable as e:
        logger.error(f"❌ Upstream unavailable: {str(e)}")
        raise HTTPException(status_code=503, detail=str(e))
    except RAGException as e:
        logger.error(f"❌ Query failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
