"""
Configuration management for the RAG system.

Handles environment variables, settings and the pipeline's data models
using Pydantic for validation and type safety.
"""
