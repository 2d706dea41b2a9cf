"""
LangGraph workflows for the RAG pipeline.
"""
