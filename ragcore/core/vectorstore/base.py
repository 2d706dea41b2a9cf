"""
Vector index interface shared by all providers.

Defines the namespace-scoped operations the pipeline relies on and the score
normalization that turns each metric into a [0, 1] relevance.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ragcore.utils.decorators import clamp


@dataclass(frozen=True)
class VectorMatch:
    """A single similarity search hit."""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    vector: Optional[List[float]] = None


def normalize_score(score: float, metric: str) -> float:
    """
    Map a raw similarity or distance to [0, 1].

    Cosine and dot-product similarities are clamped (negative means unrelated);
    distance metrics decay as ``1 / (1 + d)``.

    Args:
        score: Raw score reported by the index
        metric: Metric name (cosine, dot, euclid, manhattan)

    Returns:
        Relevance in [0, 1]
    """
    metric = (metric or "cosine").lower()
    if metric in ("euclid", "euclidean", "manhattan", "l2", "l1"):
        try:
            distance = max(0.0, float(score))
        except (TypeError, ValueError):
            return 0.0
        return clamp(1.0 / (1.0 + distance))
    return clamp(score)


class VectorIndexService(ABC):
    """Abstract base class for namespace-isolated vector indexes."""

    metric: str = "cosine"

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: Sequence[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        include_vectors: bool = False
    ) -> List[VectorMatch]:
        """
        Similarity search inside one namespace.

        Raises:
            VectorIndexUnavailable: If the search fails
            VectorIndexTimeout: If the search exceeds its timeout
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        namespace: str,
        id: str,
        vector: Sequence[float],
        metadata: Dict[str, Any]
    ) -> None:
        """Insert or replace one vector."""
        pass

    @abstractmethod
    async def delete(
        self,
        namespace: str,
        ids: Optional[List[str]] = None,
        delete_all: bool = False,
        filter: Optional[Dict[str, Any]] = None
    ) -> None:
        """Delete vectors by id, by metadata filter, or the whole namespace."""
        pass

    @abstractmethod
    async def stats(self, namespace: str) -> int:
        """Number of vectors stored in a namespace."""
        pass

    async def ensure_collection(self) -> None:
        """Prepare index storage; called once at startup."""
        return None

    async def health_check(self) -> bool:
        """Check if the index is reachable."""
        return True

    async def close(self) -> None:
        """Release any held resources."""
        return None
