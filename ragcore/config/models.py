"""
Pydantic models for the pipeline's data flow.

Records produced by one stage and consumed by the next are frozen so a stage
can only hand on a new collection, never edit a shared one.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ragcore.utils.decorators import clamp


class VariantKind(str, Enum):
    """How a query variant was produced."""

    ORIGINAL = "original"
    VARIATION = "variation"
    HYPOTHETICAL = "hypothetical"
    SUBQUERY = "subquery"
    BROADENED = "broadened"


class RetrievalStrategy(str, Enum):
    """Which sources a query should be answered from."""

    VECTOR = "vector"
    DATABASE = "database"
    HYBRID = "hybrid"
    NONE = "none"


class ChatMessage(BaseModel):
    """A single conversation turn."""

    role: str
    content: str


class Query(BaseModel):
    """An incoming request."""

    text: str = Field(..., min_length=1)
    scope_id: str = Field(..., min_length=1)
    conversation_history: List[ChatMessage] = Field(default_factory=list)


class QueryVariant(BaseModel):
    """A rewritten form of the query used for retrieval."""

    model_config = ConfigDict(frozen=True)

    original_ref: str
    text: str
    kind: VariantKind


class ExpandedQuery(BaseModel):
    """Result of a single query expansion call."""

    original: str
    variations: List[str] = Field(default_factory=list)
    hypothetical_answer: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    intent: str = "question"
    is_fallback: bool = False


class Candidate(BaseModel):
    """An unranked retrieved unit of content with a provisional score."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    source_type: str
    raw_score: float = Field(default=0.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("raw_score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        """Keep all scores inside [0, 1]."""
        return clamp(v)

    def with_score(self, score: float) -> "Candidate":
        """Return a copy carrying a new provisional score."""
        return self.model_copy(update={"raw_score": clamp(score)})


class RankedResult(BaseModel):
    """A candidate with its final relevance after reranking."""

    model_config = ConfigDict(frozen=True)

    candidate: Candidate
    final_score: float
    rerank_reasoning: Optional[str] = None
    scored_by: str = "original"

    @field_validator("final_score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        """Keep all scores inside [0, 1]."""
        return clamp(v)


class RetrievalDecision(BaseModel):
    """Whether and how a query should retrieve supporting knowledge."""

    should_retrieve: bool = True
    strategy: RetrievalStrategy = RetrievalStrategy.HYBRID
    target_sources: List[str] = Field(default_factory=list)
    reasoning: str = ""
    is_fallback: bool = False


class SourceFilters(BaseModel):
    """Which retrieval branches to run and how to scope them."""

    namespaces: List[str] = Field(default_factory=list)
    metadata_filter: Optional[Dict[str, Any]] = None
    record_ids: List[str] = Field(default_factory=list)
    include_vector: bool = True
    include_structured: bool = True


class SynthesisResult(BaseModel):
    """Answer text plus calibrated confidence."""

    answer: str
    confidence: float = Field(ge=0, le=0.95)
    cited_indices: List[int] = Field(default_factory=list)


class ResponseMetadata(BaseModel):
    """Per-request latencies (ms) and flags."""

    latency: Dict[str, float] = Field(default_factory=dict)
    flags: Dict[str, Any] = Field(default_factory=dict)


class RAGResponse(BaseModel):
    """Final pipeline output returned to callers."""

    answer: str
    sources: List[RankedResult] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=0.95)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class CacheEntry(BaseModel):
    """A cached (query -> response) pair stored in the vector index."""

    id: str
    embedding_vector: List[float] = Field(default_factory=list)
    original_query_text: str
    serialized_response: str
    tool_id: str
    scope_id: str
    created_at: float
    ttl_seconds: int = Field(gt=0)
    hit_count: int = Field(default=0, ge=0)
    similarity: Optional[float] = None

    def age(self, now: float) -> float:
        """Seconds since the entry was written."""
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        """Entries expire once their age exceeds the TTL."""
        return self.age(now) > self.ttl_seconds

    def to_metadata(self) -> Dict[str, Any]:
        """Payload stored alongside the vector."""
        return {
            "original_query": self.original_query_text,
            "response": self.serialized_response,
            "tool_id": self.tool_id,
            "scope_id": self.scope_id,
            "created_at": self.created_at,
            "ttl_seconds": self.ttl_seconds,
            "hit_count": self.hit_count,
        }

    @classmethod
    def from_match(cls, entry_id: str, metadata: Dict[str, Any], vector=None, similarity=None) -> "CacheEntry":
        """Rebuild an entry from a vector index match."""
        return cls(
            id=entry_id,
            embedding_vector=list(vector or []),
            original_query_text=metadata["original_query"],
            serialized_response=metadata["response"],
            tool_id=metadata["tool_id"],
            scope_id=metadata["scope_id"],
            created_at=float(metadata["created_at"]),
            ttl_seconds=int(metadata["ttl_seconds"]),
            hit_count=int(metadata.get("hit_count", 0)),
            similarity=similarity,
        )


class PipelineOptions(BaseModel):
    """Per-request switches; unset values fall back to configuration."""

    use_cache: Optional[bool] = None
    use_query_expansion: Optional[bool] = None
    expansion_strategy: Optional[str] = None
    use_reranking: bool = True
    use_guardrails: Optional[bool] = None
    top_k: Optional[int] = Field(default=None, ge=1)
    retrieval_k: Optional[int] = Field(default=None, ge=1)
    tool_id: str = "rag_query"
    namespaces: List[str] = Field(default_factory=list)
    metadata_filter: Optional[Dict[str, Any]] = None
