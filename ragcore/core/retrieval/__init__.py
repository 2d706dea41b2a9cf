"""
Retrieval module initialization.

Exports query expansion, multi-source retrieval, dedup/diversity filtering
and retrieval strategy selection.
"""

from .dedup import (
    fingerprint,
    dedupe_by_fingerprint,
    jaccard_similarity,
    ensure_diversity
)

from .expansion import (
    ExpansionStrategy,
    QueryExpander,
    extract_keywords
)

from .multi_source import (
    MultiSourceRetriever,
    RetrievalReport,
    boost_keywords,
    filter_by_quality
)

from .strategy import (
    RetrievalStrategySelector,
    fallback_decision
)

__all__ = [
    "fingerprint",
    "dedupe_by_fingerprint",
    "jaccard_similarity",
    "ensure_diversity",
    "ExpansionStrategy",
    "QueryExpander",
    "extract_keywords",
    "MultiSourceRetriever",
    "RetrievalReport",
    "boost_keywords",
    "filter_by_quality",
    "RetrievalStrategySelector",
    "fallback_decision"
]
