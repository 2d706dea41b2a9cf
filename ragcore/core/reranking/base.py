"""
Reranker interface shared by the keyword and semantic-judge strategies.
"""

from abc import ABC, abstractmethod
from typing import List
from ragcore.config.models import Candidate, RankedResult


def keep_original_order(candidates: List[Candidate], top_k: int) -> List[RankedResult]:
    """Wrap candidates as results without rescoring them."""
    return [
        RankedResult(candidate=candidate, final_score=candidate.raw_score, scored_by="original")
        for candidate in candidates[:max(top_k, 0)]
    ]


class Reranker(ABC):
    """Abstract base class for rerankers."""

    name: str = "reranker"

    @abstractmethod
    async def rerank(
        self,
        query: str,
        candidates: List[Candidate],
        top_k: int
    ) -> List[RankedResult]:
        """
        Rescore and reorder a candidate pool.

        Args:
            query: Query text
            candidates: Candidate pool
            top_k: Maximum number of results

        Returns:
            At most ``min(top_k, len(candidates))`` results, best first
        """
        pass
