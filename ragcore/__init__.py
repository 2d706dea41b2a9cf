"""
Retrieval-Augmented Generation pipeline

Answers questions over a tenant's documents and structured records, built with:
- LangGraph for the pipeline graph
- LangChain prompt templates and OpenAI chat models
- Qdrant vector index for documents and the semantic cache
- LLM judge and keyword reranking
"""

__version__ = "1.0.0"
