"""
API services module initialization.

Exports all service classes.
"""

from .rag_service import RAGService, get_rag_service

__all__ = [
    "RAGService",
    "get_rag_service"
]
