"""
Retrieval strategy selection.

Decides per query whether supporting knowledge is needed and which sources to
consult. Any failure fails open toward hybrid retrieval.
"""

import logging
from typing import List
from ragcore.chains.prompts import get_strategy_prompt, render_messages
from ragcore.config.models import RetrievalDecision, RetrievalStrategy
from ragcore.core.inference import TextInferenceService
from ragcore.utils.exceptions import MalformedUpstreamOutput
from ragcore.utils.logging import get_logger, log_stage_event

logger = get_logger(__name__)

FALLBACK_SOURCES = ["database", "vector"]


def fallback_decision(reason: str = "Fallback to hybrid retrieval") -> RetrievalDecision:
    """Decision used whenever the selector cannot decide."""
    return RetrievalDecision(
        should_retrieve=True,
        strategy=RetrievalStrategy.HYBRID,
        target_sources=list(FALLBACK_SOURCES),
        reasoning=reason,
        is_fallback=True
    )


class RetrievalStrategySelector:
    """Classifies retrieval need with one inference call."""

    def __init__(self, inference: TextInferenceService):
        self.inference = inference

    async def decide(self, query: str) -> RetrievalDecision:
        """
        Decide whether and how to retrieve for a query.

        Unknown strategies and malformed output count as failures. A
        ``none`` strategy always means no retrieval.

        Args:
            query: Query text

        Returns:
            RetrievalDecision; the hybrid fallback on any failure
        """
        try:
            parsed = await self.inference.complete_json(
                render_messages(get_strategy_prompt(), query=query),
                temperature=0.3
            )
            if not isinstance(parsed, dict):
                raise MalformedUpstreamOutput("Strategy output is not a JSON object")

            strategy = RetrievalStrategy(str(parsed.get("retrievalStrategy", "")).lower())

            sources = parsed.get("targetSources") or []
            if not isinstance(sources, list):
                raise MalformedUpstreamOutput("targetSources is not a list")
            target_sources: List[str] = [s for s in sources if isinstance(s, str)]

            should_retrieve = parsed.get("shouldRetrieve", True)
            if not isinstance(should_retrieve, bool):
                raise MalformedUpstreamOutput("shouldRetrieve is not a boolean")
            if strategy == RetrievalStrategy.NONE:
                should_retrieve = False

            decision = RetrievalDecision(
                should_retrieve=should_retrieve,
                strategy=strategy,
                target_sources=target_sources,
                reasoning=str(parsed.get("reasoning", ""))
            )
            log_stage_event(
                logger, "decision", "decided",
                strategy=decision.strategy.value,
                should_retrieve=decision.should_retrieve
            )
            return decision

        except Exception as e:
            log_stage_event(
                logger, "decision", "fallback",
                level=logging.WARNING, error=type(e).__name__
            )
            return fallback_decision()
