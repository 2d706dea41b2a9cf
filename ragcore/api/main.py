"""
Main FastAPI application.

Builds the RAG system at startup and closes its clients at shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ragcore.api.endpoints import health_router, query_router, system_router
from ragcore.api.services import RAGService
from ragcore.core.system import RAGSystem, create_rag_system
from ragcore.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(system: Optional[RAGSystem] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        system: Prebuilt system; built from configuration when omitted

    Returns:
        FastAPI app
    """
    setup_logging("ragcore")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting RAG API server")
        try:
            rag_system = system or create_rag_system()
            await rag_system.startup()
        except Exception as e:
            logger.error(f"❌ Failed to initialize RAG system: {str(e)}")
            raise

        app.state.rag_service.set_rag_system(rag_system)
        logger.info("✅ RAG system initialized successfully")
        try:
            yield
        finally:
            await rag_system.shutdown()
            app.state.rag_service.set_rag_system(None)

    app = FastAPI(
        title="RAG Pipeline API",
        description="Retrieval-augmented answering with semantic caching and reranking",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.rag_service = RAGService()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(query_router)
    app.include_router(system_router)

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "RAG Pipeline API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "cache": "/system/cache"
        }

    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        return JSONResponse(
            status_code=404,
            content={"error": "Endpoint not found", "path": str(request.url)}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from ragcore.config.settings import get_config

    config = get_config()
    uvicorn.run(
        "ragcore.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.reload
    )
