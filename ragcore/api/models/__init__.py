"""
API models module initialization.

Exports all Pydantic models for API communication.
"""

from .schemas import (
    QueryRequest,
    HealthResponse,
    CacheMetricsResponse,
    CacheClearResponse,
    ErrorResponse
)

__all__ = [
    "QueryRequest",
    "HealthResponse",
    "CacheMetricsResponse",
    "CacheClearResponse",
    "ErrorResponse"
]
