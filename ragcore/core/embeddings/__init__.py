"""
Embedding module initialization.

Exports the embedding service interface and providers.
"""

from .providers import (
    EmbeddingService,
    OpenAIEmbeddingService,
    create_embedding_service
)

__all__ = [
    "EmbeddingService",
    "OpenAIEmbeddingService",
    "create_embedding_service"
]
