"""
Semantic-judge reranker.

Delegates relevance scoring to the inference service's ``rank`` operation.
Candidates are scored in concurrent batches against a fixed 0-1 rubric; a
batch that fails keeps its original scores and order.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from ragcore.chains.prompts import get_judge_prompt, get_pairwise_prompt, render_messages
from ragcore.config.models import Candidate, RankedResult
from ragcore.config.settings import RerankConfig, get_config
from ragcore.core.inference import TextInferenceService
from ragcore.core.reranking.base import Reranker, keep_original_order
from ragcore.utils.decorators import clamp, timing_decorator
from ragcore.utils.exceptions import MalformedUpstreamOutput
from ragcore.utils.logging import get_logger, log_stage_event

logger = get_logger(__name__)

JUDGE_SNIPPET_LENGTH = 500
PAIRWISE_SNIPPET_LENGTH = 300


def _snippet(content: str, length: int) -> str:
    return content[:length] + ("..." if len(content) > length else "")


def _parse_scores(parsed: Any) -> Dict[int, Dict[str, Any]]:
    """Index -> score object, accepting a bare list or ``{"scores": [...]}``."""
    if isinstance(parsed, dict):
        parsed = parsed.get("scores", parsed.get("results"))
    if not isinstance(parsed, list):
        raise MalformedUpstreamOutput("Judge output has no score list")

    scores = {}
    for item in parsed:
        if not isinstance(item, dict):
            continue
        try:
            index = int(item.get("index"))
            score = float(item.get("score"))
        except (TypeError, ValueError):
            continue
        scores[index] = {"score": score, "reasoning": item.get("reasoning")}
    return scores


class SemanticJudgeReranker(Reranker):
    """LLM relevance judge with batch and pairwise modes."""

    name = "semantic_judge"

    def __init__(
        self,
        inference: TextInferenceService,
        config: Optional[RerankConfig] = None
    ):
        """
        Initialize the judge.

        Args:
            inference: Text-inference service
            config: Rerank configuration (batch size, threshold, pairwise pool)
        """
        self.inference = inference
        self.config = config or get_config().rerank
        self.batch_size = self.config.batch_size
        self.score_threshold = self.config.score_threshold

    async def _score_batch(
        self,
        query: str,
        batch: List[Candidate],
        batch_number: int
    ) -> List[RankedResult]:
        documents = "\n\n".join(
            f"[{idx + 1}] {_snippet(candidate.content, JUDGE_SNIPPET_LENGTH)}"
            for idx, candidate in enumerate(batch)
        )
        messages = render_messages(get_judge_prompt(), query=query, documents=documents)

        try:
            scores = _parse_scores(await self.inference.rank(messages))
        except Exception as e:
            log_stage_event(
                logger, "reranking", "batch_fallback",
                level=logging.WARNING, batch=batch_number, error=type(e).__name__
            )
            return keep_original_order(batch, len(batch))

        results = []
        for idx, candidate in enumerate(batch):
            scored = scores.get(idx + 1)
            if scored is None:
                results.append(RankedResult(
                    candidate=candidate,
                    final_score=candidate.raw_score,
                    scored_by="original"
                ))
                continue
            results.append(RankedResult(
                candidate=candidate,
                final_score=clamp(scored["score"]),
                rerank_reasoning=scored["reasoning"] if isinstance(scored["reasoning"], str) else None,
                scored_by=self.name
            ))
        return results

    @timing_decorator
    async def rerank(
        self,
        query: str,
        candidates: List[Candidate],
        top_k: int
    ) -> List[RankedResult]:
        """
        Judge candidates in concurrent batches.

        Pools no larger than ``top_k`` are returned as-is without any call.
        A failed batch keeps its original scores; the final list is sorted by
        score and, when configured, judged results under the threshold are
        dropped.

        Args:
            query: Query text
            candidates: Candidate pool
            top_k: Maximum number of results

        Returns:
            At most ``top_k`` results, best first
        """
        if not candidates:
            return []
        if len(candidates) <= top_k:
            return keep_original_order(candidates, top_k)

        batches = [
            candidates[i:i + self.batch_size]
            for i in range(0, len(candidates), self.batch_size)
        ]
        batch_results = await asyncio.gather(*(
            self._score_batch(query, batch, number)
            for number, batch in enumerate(batches)
        ))

        results = [result for batch in batch_results for result in batch]
        if self.score_threshold > 0:
            results = [
                r for r in results
                if r.scored_by != self.name or r.final_score >= self.score_threshold
            ]

        results.sort(key=lambda r: r.final_score, reverse=True)
        judged = sum(1 for r in results if r.scored_by == self.name)
        log_stage_event(logger, "reranking", "judged", batches=len(batches), judged=judged)
        return results[:top_k]

    async def _compare(self, query: str, doc_a: Candidate, doc_b: Candidate) -> str:
        """Id of the more relevant document; the first one if the call fails."""
        messages = render_messages(
            get_pairwise_prompt(),
            query=query,
            doc_a=doc_a.content[:PAIRWISE_SNIPPET_LENGTH],
            doc_b=doc_b.content[:PAIRWISE_SNIPPET_LENGTH]
        )
        try:
            parsed = await self.inference.rank(messages, max_tokens=150)
            winner = str(parsed.get("winner", "")).strip().upper() if isinstance(parsed, dict) else ""
        except Exception as e:
            logger.warning(f"⚠️ Pairwise comparison failed, keeping first document: {str(e)}")
            return doc_a.id
        return doc_b.id if winner == "B" else doc_a.id

    async def rerank_pairwise(
        self,
        query: str,
        candidates: List[Candidate],
        top_k: int
    ) -> List[RankedResult]:
        """
        Rank a small pool by pairwise win rate.

        Every unordered pair is compared once and each document scores
        ``wins / (n - 1)``. Pools above the configured pairwise limit are
        reranked in batches instead.

        Args:
            query: Query text
            candidates: Candidate pool
            top_k: Maximum number of results

        Returns:
            At most ``top_k`` results, best first
        """
        if len(candidates) <= 1:
            return keep_original_order(candidates, top_k)
        if len(candidates) > self.config.max_pairwise_pool:
            return await self.rerank(query, candidates, top_k)

        pairs = [
            (candidates[i], candidates[j])
            for i in range(len(candidates))
            for j in range(i + 1, len(candidates))
        ]
        winners = await asyncio.gather(*(self._compare(query, a, b) for a, b in pairs))

        wins = {candidate.id: 0 for candidate in candidates}
        for winner in winners:
            wins[winner] += 1

        results = [
            RankedResult(
                candidate=candidate,
                final_score=wins[candidate.id] / (len(candidates) - 1),
                rerank_reasoning=f"pairwise_wins={wins[candidate.id]}",
                scored_by="pairwise"
            )
            for candidate in candidates
        ]
        results.sort(key=lambda r: r.final_score, reverse=True)
        return results[:top_k]
