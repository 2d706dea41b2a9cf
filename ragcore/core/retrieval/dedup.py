"""
Near-duplicate removal and diversity filtering for candidate pools.

Both filters return new lists and never change candidate identity.
"""

from typing import Dict, List, Optional, Set
from ragcore.config.models import Candidate
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FINGERPRINT_LENGTH = 200
DEFAULT_DIVERSITY_THRESHOLD = 0.85


def fingerprint(content: str, prefix_length: int = DEFAULT_FINGERPRINT_LENGTH) -> str:
    """
    Cheap normalized key used to spot near-duplicates.

    Args:
        content: Candidate text
        prefix_length: Number of normalized characters kept

    Returns:
        Lower-cased, whitespace-collapsed prefix
    """
    return " ".join((content or "").lower().split())[:prefix_length]


def dedupe_by_fingerprint(
    candidates: List[Candidate],
    prefix_length: int = DEFAULT_FINGERPRINT_LENGTH
) -> List[Candidate]:
    """
    Collapse candidates sharing a fingerprint.

    The highest-scoring member of each group survives, placed where the group
    first appeared. Applying the filter twice gives the same result.

    Args:
        candidates: Candidate pool
        prefix_length: Fingerprint prefix length

    Returns:
        New list with one candidate per fingerprint
    """
    order: List[str] = []
    best: Dict[str, Candidate] = {}

    for candidate in candidates:
        key = fingerprint(candidate.content, prefix_length)
        current = best.get(key)
        if current is None:
            order.append(key)
            best[key] = candidate
        elif candidate.raw_score > current.raw_score:
            best[key] = candidate

    unique = [best[key] for key in order]
    if len(unique) < len(candidates):
        logger.debug(f"🧹 Fingerprint dedup removed {len(candidates) - len(unique)} candidates")
    return unique


def _tokens(text: str) -> Set[str]:
    return set((text or "").lower().split())


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set Jaccard similarity of two texts."""
    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if not tokens_a and not tokens_b:
        return 1.0
    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)


def ensure_diversity(
    candidates: List[Candidate],
    threshold: Optional[float] = None
) -> List[Candidate]:
    """
    Greedily keep candidates that are not too similar to any kept one.

    A candidate is accepted only if its Jaccard similarity to every
    already-accepted candidate is below ``threshold``. O(n^2) in the pool
    size, which stays small (tens of candidates).

    Args:
        candidates: Candidate pool, best first
        threshold: Similarity at or above which a candidate is rejected

    Returns:
        New filtered list preserving input order
    """
    threshold = DEFAULT_DIVERSITY_THRESHOLD if threshold is None else threshold

    accepted: List[Candidate] = []
    accepted_tokens: List[Set[str]] = []

    for candidate in candidates:
        tokens = _tokens(candidate.content)
        too_similar = False
        for other in accepted_tokens:
            union = tokens | other
            similarity = len(tokens & other) / len(union) if union else 1.0
            if similarity >= threshold:
                too_similar = True
                break
        if not too_similar:
            accepted.append(candidate)
            accepted_tokens.append(tokens)

    if len(accepted) < len(candidates):
        logger.debug(f"🌈 Diversity filter removed {len(candidates) - len(accepted)} candidates")
    return accepted
