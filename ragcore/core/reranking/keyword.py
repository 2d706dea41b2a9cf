"""
Deterministic keyword reranker.

Blends each candidate's retrieval score with a lightweight BM25-style lexical
score. Term frequency and inverse document frequency are held constant at 1,
so the lexical part only rewards term presence, discounted for long documents.
"""

import re
from typing import List, Set
from ragcore.config.models import Candidate, RankedResult
from ragcore.core.reranking.base import Reranker

ORIGINAL_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3

K1 = 1.2
B = 0.75
AVG_DOC_LENGTH = 500

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been",
})

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_terms(text: str) -> Set[str]:
    """Lower-cased terms longer than two characters, stop words removed."""
    words = _PUNCTUATION.sub(" ", (text or "").lower()).split()
    return {word for word in words if len(word) > 2 and word not in STOP_WORDS}


def lexical_score(query_terms: Set[str], doc_terms: Set[str], doc_length: int) -> float:
    """
    Simplified BM25 over term presence.

    Returns:
        Per-term average in [0, 1]
    """
    if not query_terms:
        return 0.0

    length_norm = 1 - B + B * (doc_length / AVG_DOC_LENGTH)
    per_term = (K1 + 1) / (1 + K1 * length_norm)
    score = sum(per_term for term in query_terms if term in doc_terms)
    return min(score / len(query_terms), 1.0)


class KeywordReranker(Reranker):
    """Lexical reranker with no external calls."""

    name = "keyword"

    async def rerank(
        self,
        query: str,
        candidates: List[Candidate],
        top_k: int
    ) -> List[RankedResult]:
        return self.rerank_sync(query, candidates, top_k)

    def rerank_sync(
        self,
        query: str,
        candidates: List[Candidate],
        top_k: int
    ) -> List[RankedResult]:
        """
        Score and sort candidates.

        Args:
            query: Query text
            candidates: Candidate pool
            top_k: Maximum number of results

        Returns:
            Results ordered by blended score, best first
        """
        query_terms = extract_terms(query)

        results = []
        for candidate in candidates:
            doc_terms = extract_terms(candidate.content)
            bm25 = lexical_score(query_terms, doc_terms, len(candidate.content))
            matches = len(query_terms & doc_terms)
            results.append(RankedResult(
                candidate=candidate,
                final_score=candidate.raw_score * ORIGINAL_WEIGHT + bm25 * LEXICAL_WEIGHT,
                rerank_reasoning=f"keyword_matches={matches} bm25={bm25:.3f}",
                scored_by=self.name
            ))

        results.sort(key=lambda r: r.final_score, reverse=True)
        return results[:max(top_k, 0)]
