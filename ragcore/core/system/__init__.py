"""
Core system module initialization.

Exports the RAG service handle.
"""

from .rag_system import RAGSystem, create_rag_system

__all__ = [
    "RAGSystem",
    "create_rag_system"
]
