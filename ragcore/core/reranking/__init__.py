"""
Reranking module initialization.

Exports the keyword and semantic-judge rerankers and a factory.
"""

from typing import Optional
from ragcore.config.settings import RerankConfig
from ragcore.core.inference import TextInferenceService

from .base import (
    Reranker,
    keep_original_order
)

from .keyword import (
    KeywordReranker,
    extract_terms,
    lexical_score
)

from .semantic_judge import SemanticJudgeReranker


def create_reranker(
    kind: str = "semantic_judge",
    inference: Optional[TextInferenceService] = None,
    config: Optional[RerankConfig] = None
) -> Reranker:
    """
    Factory function to create a reranker.

    Args:
        kind: ``keyword`` or ``semantic_judge`` (``llm`` is accepted as an alias)
        inference: Text-inference service, required by the semantic judge
        config: Rerank configuration

    Returns:
        Reranker instance

    Raises:
        ValueError: If the kind is unknown or the judge has no inference service
    """
    kind = kind.lower()
    if kind == "keyword":
        return KeywordReranker()
    if kind in ("semantic_judge", "llm"):
        if inference is None:
            raise ValueError("The semantic judge reranker needs an inference service")
        return SemanticJudgeReranker(inference, config)
    raise ValueError(f"Unsupported reranker: {kind}")


__all__ = [
    "Reranker",
    "keep_original_order",
    "KeywordReranker",
    "extract_terms",
    "lexical_score",
    "SemanticJudgeReranker",
    "create_reranker"
]
