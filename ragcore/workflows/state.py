"""
State definitions for the LangGraph RAG pipeline.

Contains the TypedDict the pipeline graph threads through its nodes.
"""

from operator import add
from typing import Annotated, Any, Dict, List, Optional
from typing_extensions import TypedDict
from ragcore.config.models import (
    Candidate,
    ChatMessage,
    PipelineOptions,
    QueryVariant,
    RAGResponse,
    RankedResult,
    RetrievalDecision,
    SynthesisResult
)


def merge_dicts(left: Optional[Dict[str, Any]], right: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Reducer that merges per-node dict updates."""
    return {**(left or {}), **(right or {})}


class RAGPipelineState(TypedDict, total=False):
    """State for one ``rag_query`` run."""
    query: str
    scope_id: str
    history: List[ChatMessage]
    options: PipelineOptions

    input_passed: bool
    output_valid: bool
    cached_response: Optional[RAGResponse]

    decision: RetrievalDecision
    variants: List[QueryVariant]
    candidates: List[Candidate]
    ranked: List[RankedResult]
    reranker: str
    synthesis: SynthesisResult
    answer: str

    latency: Annotated[Dict[str, float], merge_dicts]
    fallbacks: Annotated[List[str], add]
