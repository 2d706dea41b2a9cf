"""
Prompt templates for the RAG pipeline.

Contains the LangChain chat prompts used for:
- Query expansion, decomposition and step-back
- Retrieval strategy selection
- Relevance judging
- Grounded answer synthesis
"""
