"""
Multi-source retrieval for the RAG pipeline.

Runs vector similarity search (per query variant, per namespace) and direct
structured-record lookups concurrently, normalizes every score to [0, 1] and
merges the branches into one candidate pool. A failing branch contributes
nothing instead of failing the whole call.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Tuple
from ragcore.config.models import Candidate, QueryVariant, SourceFilters
from ragcore.config.settings import RetrievalConfig, StoreConfig, get_config
from ragcore.core.embeddings import EmbeddingService
from ragcore.core.store import StructuredStore
from ragcore.core.vectorstore import VectorIndexService, VectorMatch, normalize_score
from ragcore.utils.decorators import clamp, timing_decorator
from ragcore.utils.logging import get_logger, log_stage_event

logger = get_logger(__name__)

CONTENT_KEYS = ("content", "text", "page_content")

BranchResult = Tuple[str, List[Candidate], bool]


@dataclass
class RetrievalReport:
    """Merged candidates plus which branches ran and which failed."""

    candidates: List[Candidate] = field(default_factory=list)
    branches: int = 0
    failed_branches: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed_branches)


def boost_keywords(candidates: List[Candidate], query: str, weight: float) -> List[Candidate]:
    """
    Raise scores of candidates that mention the query's keywords.

    Args:
        candidates: Candidate pool
        query: Original query text
        weight: Maximum boost for a candidate matching every keyword

    Returns:
        New list with boosted, clamped scores
    """
    keywords = [word for word in query.lower().split() if len(word) > 3]
    if not keywords or weight <= 0:
        return list(candidates)

    boosted = []
    for candidate in candidates:
        content = candidate.content.lower()
        matches = sum(1 for keyword in keywords if keyword in content)
        boost = (matches / len(keywords)) * weight
        boosted.append(candidate.with_score(clamp(candidate.raw_score + boost)))
    return boosted


def filter_by_quality(candidates: List[Candidate], min_quality: float) -> List[Candidate]:
    """Drop candidates whose ``metadata.quality`` is below the minimum."""
    if min_quality <= 0:
        return list(candidates)
    kept = []
    for candidate in candidates:
        quality = candidate.metadata.get("quality")
        if quality is None or clamp(quality) >= min_quality:
            kept.append(candidate)
    return kept


def _merge_by_id(candidates: List[Candidate]) -> List[Candidate]:
    """Keep the best-scoring copy of each candidate id."""
    merged: Dict[str, Candidate] = {}
    for candidate in candidates:
        current = merged.get(candidate.id)
        if current is None or candidate.raw_score > current.raw_score:
            merged[candidate.id] = candidate
    return list(merged.values())


class MultiSourceRetriever:
    """Concurrent retrieval over the vector index and the structured store."""

    def __init__(
        self,
        embeddings: EmbeddingService,
        vector_index: VectorIndexService,
        store: Optional[StructuredStore] = None,
        config: Optional[RetrievalConfig] = None,
        store_config: Optional[StoreConfig] = None
    ):
        """
        Initialize the retriever.

        Args:
            embeddings: Embedding service
            vector_index: Vector index service
            store: Optional structured store
            config: Retrieval configuration
            store_config: Structured field priors
        """
        rag_config = get_config()
        self.embeddings = embeddings
        self.vector_index = vector_index
        self.store = store
        self.config = config or rag_config.retrieval
        self.field_priors = dict((store_config or rag_config.store).fields)
        logger.info(f"🔍 Initialized multi-source retriever (fields={list(self.field_priors)})")

    async def _run_branch(self, name: str, work: Awaitable[List[Candidate]]) -> BranchResult:
        try:
            return name, await work, False
        except Exception as e:
            log_stage_event(
                logger, "retrieval", "branch_failed",
                level=logging.WARNING, branch=name, error=type(e).__name__, detail=str(e)
            )
            return name, [], True

    def _match_to_candidate(
        self,
        match: VectorMatch,
        namespace: str,
        variant: QueryVariant
    ) -> Optional[Candidate]:
        metadata = dict(match.metadata)
        content = None
        for key in CONTENT_KEYS:
            if isinstance(metadata.get(key), str):
                content = metadata.pop(key)
                break
        if not content:
            return None

        metadata["namespace"] = namespace
        metadata["variant_kind"] = variant.kind.value
        return Candidate(
            id=str(match.id),
            content=content,
            source_type="vector",
            raw_score=normalize_score(match.score, self.vector_index.metric),
            metadata=metadata
        )

    async def _query_namespace(
        self,
        namespace: str,
        vector: List[float],
        variant: QueryVariant,
        metadata_filter: Optional[Dict[str, Any]],
        top_k: int
    ) -> List[Candidate]:
        matches = await self.vector_index.query(namespace, vector, top_k, filter=metadata_filter)
        candidates = []
        for match in matches:
            candidate = self._match_to_candidate(match, namespace, variant)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _search_variant(
        self,
        variant: QueryVariant,
        namespaces: List[str],
        metadata_filter: Optional[Dict[str, Any]],
        top_k: int
    ) -> List[BranchResult]:
        """Embed one variant, then query every namespace with it."""
        label = f"{variant.kind.value}:{variant.text[:40]}"
        try:
            vector = await self.embeddings.embed(variant.text)
        except Exception as e:
            log_stage_event(
                logger, "retrieval", "branch_failed",
                level=logging.WARNING, branch=f"embed:{label}", error=type(e).__name__, detail=str(e)
            )
            return [(f"embed:{label}", [], True)]

        return list(await asyncio.gather(*(
            self._run_branch(
                f"vector:{namespace}:{label}",
                self._query_namespace(namespace, vector, variant, metadata_filter, top_k)
            )
            for namespace in namespaces
        )))

    async def _lookup_record(self, record_id: str) -> List[Candidate]:
        """Turn one structured record into one candidate per configured field."""
        record = await self.store.get_record(record_id)
        if not record:
            return []

        candidates = []
        for field_name, prior in self.field_priors.items():
            value = record.get(field_name)
            if value is None or value == "":
                continue
            content = value if isinstance(value, str) else json.dumps(value, indent=2, default=str)
            candidates.append(Candidate(
                id=f"{record_id}:{field_name}",
                content=content,
                source_type="database",
                raw_score=prior,
                metadata={"record_id": record_id, "field": field_name}
            ))
        return candidates

    @timing_decorator
    async def retrieve_detailed(
        self,
        variants: List[QueryVariant],
        source_filters: SourceFilters,
        top_k: Optional[int] = None
    ) -> RetrievalReport:
        """
        Retrieve from every configured source and report branch health.

        Args:
            variants: Query variants; the first one's ``original_ref`` drives keyword boosting
            source_filters: Namespaces, metadata filter and record ids to consult
            top_k: Maximum number of merged candidates

        Returns:
            RetrievalReport with candidates ordered by score, best first
        """
        top_k = top_k or self.config.retrieval_k
        if not variants:
            return RetrievalReport()

        # Branches over-fetch; matches without content are dropped before truncation.
        branch_k = max(top_k, self.config.retrieval_k)

        work = []
        if source_filters.include_vector and source_filters.namespaces:
            for variant in variants:
                work.append(self._search_variant(
                    variant,
                    source_filters.namespaces,
                    source_filters.metadata_filter,
                    branch_k
                ))

        store_ready = self.store is not None and self.store.is_configured
        if source_filters.include_structured and store_ready:
            for record_id in dict.fromkeys(source_filters.record_ids):
                work.append(self._wrap_single(
                    self._run_branch(f"structured:{record_id}", self._lookup_record(record_id))
                ))

        branch_groups = await asyncio.gather(*work)
        branches = [branch for group in branch_groups for branch in group]

        pool: List[Candidate] = []
        failed: List[str] = []
        for name, candidates, is_failed in branches:
            pool.extend(candidates)
            if is_failed:
                failed.append(name)

        pool = _merge_by_id(pool)
        pool = boost_keywords(pool, variants[0].original_ref, self.config.keyword_weight)
        pool = filter_by_quality(pool, self.config.min_quality_score)
        pool.sort(key=lambda c: c.raw_score, reverse=True)
        pool = pool[:top_k]

        log_stage_event(
            logger, "retrieval", "retrieved",
            candidates=len(pool), branches=len(branches), failed=len(failed)
        )
        return RetrievalReport(candidates=pool, branches=len(branches), failed_branches=failed)

    @staticmethod
    async def _wrap_single(branch: Awaitable[BranchResult]) -> List[BranchResult]:
        return [await branch]

    async def retrieve(
        self,
        variants: List[QueryVariant],
        source_filters: SourceFilters,
        top_k: Optional[int] = None
    ) -> List[Candidate]:
        """
        Retrieve a merged, normalized candidate pool.

        Returns:
            Candidates ordered by score, at most ``top_k``
        """
        report = await self.retrieve_detailed(variants, source_filters, top_k)
        return report.candidates
