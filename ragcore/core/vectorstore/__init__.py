"""
Vector store module initialization.

Exports the vector index interface and the Qdrant provider.
"""

from .base import (
    VectorIndexService,
    VectorMatch,
    normalize_score
)

from .qdrant_client import (
    QdrantVectorIndex,
    build_filter
)

__all__ = [
    "VectorIndexService",
    "VectorMatch",
    "normalize_score",
    "QdrantVectorIndex",
    "build_filter"
]
