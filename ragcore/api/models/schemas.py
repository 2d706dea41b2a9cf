"""
API models for request/response schemas.

Pydantic models for type-safe API communication.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from ragcore.config.models import ChatMessage, PipelineOptions


class QueryRequest(BaseModel):
    """Request model for RAG queries."""
    query: str = Field(..., min_length=1, description="The question to answer")
    scope_id: str = Field(..., min_length=1, description="Tenant / business scope")
    conversation_history: List[ChatMessage] = Field(default_factory=list, description="Prior conversation turns")
    options: Optional[PipelineOptions] = Field(default=None, description="Per-request pipeline switches")


class HealthResponse(BaseModel):
    """Response model for health checks."""
    status: str = Field(..., description="Overall system status")
    components: Dict[str, Any] = Field(..., description="Component health status")
    timestamp: str = Field(..., description="Health check timestamp")


class CacheMetricsResponse(BaseModel):
    """Response model for semantic cache statistics."""
    enabled: bool = Field(..., description="Whether the semantic cache is active")
    metrics: Dict[str, Any] = Field(default_factory=dict, description="Hit/miss/save/eviction counters")


class CacheClearResponse(BaseModel):
    """Response model for cache clearing."""
    cleared: bool = Field(..., description="Whether the delete call succeeded")
    tool_id: Optional[str] = Field(default=None, description="Tool filter applied")
    scope_id: Optional[str] = Field(default=None, description="Scope filter applied")
    timestamp: str = Field(..., description="Operation timestamp")


class ErrorResponse(BaseModel):
    """Response model for errors."""
    error: str = Field(..., description="Error message")
    violations: List[str] = Field(default_factory=list, description="Guardrail violations, if any")
