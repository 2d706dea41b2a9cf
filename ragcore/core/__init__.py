"""
Core business logic modules for the RAG system.

This package contains the fundamental components:
- Embedding, inference and vector index clients
- Query expansion and multi-source retrieval
- Reranking, semantic caching and answer synthesis
"""
