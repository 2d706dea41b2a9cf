"""
Query expansion for higher retrieval recall.

Rewrites a query into paraphrases, a hypothetical answer (HyDE), sub-queries
or a broader question. Every technique falls back to the original query when
the inference service fails, so expansion never raises.
"""

import asyncio
import logging
import re
from enum import Enum
from typing import List, Optional
from ragcore.chains.prompts import (
    get_decompose_prompt,
    get_expansion_prompt,
    get_hypothetical_answer_prompt,
    get_step_back_prompt,
    render_messages
)
from ragcore.config.models import ExpandedQuery, QueryVariant, VariantKind
from ragcore.config.settings import ExpansionConfig, get_config
from ragcore.core.inference import TextInferenceService
from ragcore.utils.exceptions import MalformedUpstreamOutput
from ragcore.utils.logging import get_logger, log_stage_event
from ragcore.utils.decorators import timing_decorator

logger = get_logger(__name__)

MAX_SUBQUERIES = 5
MAX_KEYWORDS = 10

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "what",
    "how", "why", "when", "where", "who", "which", "can", "could", "would",
    "should", "do", "does", "did", "have", "has", "had",
})

_PUNCTUATION = re.compile(r"[^\w\s]")


class ExpansionStrategy(str, Enum):
    """Which expansion technique to apply."""

    NONE = "none"
    VARIATIONS = "variations"
    HYDE = "hyde"
    DECOMPOSE = "decompose"
    STEP_BACK = "step_back"
    FULL = "full"


def extract_keywords(text: str) -> List[str]:
    """
    Local keyword extraction used when no inference is available.

    Args:
        text: Query text

    Returns:
        Up to 10 lower-cased terms longer than two characters, stop words removed
    """
    words = _PUNCTUATION.sub(" ", (text or "").lower()).split()
    return [word for word in words if len(word) > 2 and word not in STOP_WORDS][:MAX_KEYWORDS]


def _string_list(value) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedUpstreamOutput(f"Expected a list of strings, got {type(value).__name__}")
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class QueryExpander:
    """Generates retrieval variants of a query through the inference service."""

    def __init__(
        self,
        inference: TextInferenceService,
        config: Optional[ExpansionConfig] = None
    ):
        """
        Initialize the query expander.

        Args:
            inference: Text-inference service
            config: Expansion configuration
        """
        self.inference = inference
        self.config = config or get_config().expansion

    async def expand(
        self,
        query: str,
        max_variations: Optional[int] = None,
        want_hypothetical: bool = True
    ) -> ExpandedQuery:
        """
        Paraphrase a query and extract its keywords in one inference call.

        Args:
            query: Query text
            max_variations: Maximum number of paraphrases
            want_hypothetical: Whether to also ask for a hypothetical answer

        Returns:
            ExpandedQuery; on any failure, no variations and locally
            extracted keywords with ``is_fallback`` set
        """
        max_variations = self.config.max_variations if max_variations is None else max_variations
        hypothetical_task = (
            "Write a hypothetical answer (2-3 sentences) that would ideally answer this query"
            if want_hypothetical else "Skip hypothetical answer"
        )
        messages = render_messages(
            get_expansion_prompt(),
            query=query,
            max_variations=max_variations,
            hypothetical_task=hypothetical_task
        )

        try:
            parsed = await self.inference.complete_json(messages, temperature=0.7, max_tokens=500)
            if not isinstance(parsed, dict):
                raise MalformedUpstreamOutput("Expansion output is not a JSON object")

            variations = [
                v for v in _string_list(parsed.get("variations"))
                if v.lower() != query.strip().lower()
            ][:max_variations]
            hypothetical = parsed.get("hypotheticalAnswer") if want_hypothetical else None
            if not isinstance(hypothetical, str) or not hypothetical.strip():
                hypothetical = None

            expanded = ExpandedQuery(
                original=query,
                variations=variations,
                hypothetical_answer=hypothetical,
                keywords=_string_list(parsed.get("keywords"))[:MAX_KEYWORDS] or extract_keywords(query),
                intent=parsed.get("intent") if isinstance(parsed.get("intent"), str) else "question"
            )
            log_stage_event(logger, "expansion", "expanded", variations=len(expanded.variations))
            return expanded

        except Exception as e:
            log_stage_event(
                logger, "expansion", "fallback",
                level=logging.WARNING, operation="expand", error=type(e).__name__
            )
            return ExpandedQuery(
                original=query,
                variations=[],
                keywords=extract_keywords(query),
                is_fallback=True
            )

    async def decompose(self, query: str) -> List[str]:
        """
        Split a multi-part query into independently answerable sub-queries.

        Returns:
            At most five sub-queries; ``[query]`` on failure
        """
        try:
            parsed = await self.inference.complete_json(
                render_messages(get_decompose_prompt(), query=query),
                temperature=0.3
            )
            if not isinstance(parsed, dict):
                raise MalformedUpstreamOutput("Decomposition output is not a JSON object")
            sub_queries = _string_list(parsed.get("subQueries"))[:MAX_SUBQUERIES]
            return sub_queries or [query]
        except Exception as e:
            log_stage_event(
                logger, "expansion", "fallback",
                level=logging.WARNING, operation="decompose", error=type(e).__name__
            )
            return [query]

    async def step_back(self, query: str) -> str:
        """
        Ask for the broader question behind a specific query.

        Returns:
            The broader question; ``query`` on failure
        """
        try:
            parsed = await self.inference.complete_json(
                render_messages(get_step_back_prompt(), query=query),
                temperature=0.5
            )
            broader = parsed.get("broaderQuestion") if isinstance(parsed, dict) else None
            if not isinstance(broader, str) or not broader.strip():
                raise MalformedUpstreamOutput("Step-back output has no broaderQuestion")
            return broader.strip()
        except Exception as e:
            log_stage_event(
                logger, "expansion", "fallback",
                level=logging.WARNING, operation="step_back", error=type(e).__name__
            )
            return query

    async def generate_hypothetical_answer(self, query: str) -> str:
        """
        Write an ideal answer to embed in place of the query (HyDE).

        Returns:
            The hypothetical answer; ``query`` on failure
        """
        try:
            answer = await self.inference.generate(
                render_messages(get_hypothetical_answer_prompt(), query=query),
                temperature=0.7,
                max_tokens=300
            )
            return answer.strip()
        except Exception as e:
            log_stage_event(
                logger, "expansion", "fallback",
                level=logging.WARNING, operation="hyde", error=type(e).__name__
            )
            return query

    @timing_decorator
    async def expand_with_strategy(
        self,
        query: str,
        strategy=ExpansionStrategy.VARIATIONS,
        max_variations: Optional[int] = None
    ) -> List[QueryVariant]:
        """
        Produce retrieval variants for a query using one strategy.

        The original query is always the first variant. FULL runs every
        technique concurrently and keeps the first occurrence of each text.

        Args:
            query: Query text
            strategy: ExpansionStrategy or its string value
            max_variations: Maximum number of paraphrases

        Returns:
            List of query variants
        """
        try:
            strategy = ExpansionStrategy(strategy)
        except ValueError:
            logger.warning(f"⚠️ Unknown expansion strategy '{strategy}', using variations")
            strategy = ExpansionStrategy.VARIATIONS

        pairs = [(query, VariantKind.ORIGINAL)]

        if strategy == ExpansionStrategy.VARIATIONS:
            expanded = await self.expand(query, max_variations, want_hypothetical=False)
            pairs.extend((v, VariantKind.VARIATION) for v in expanded.variations)

        elif strategy == ExpansionStrategy.HYDE:
            answer = await self.generate_hypothetical_answer(query)
            pairs.append((answer, VariantKind.HYPOTHETICAL))

        elif strategy == ExpansionStrategy.DECOMPOSE:
            sub_queries = await self.decompose(query)
            pairs.extend((q, VariantKind.SUBQUERY) for q in sub_queries)

        elif strategy == ExpansionStrategy.STEP_BACK:
            broader = await self.step_back(query)
            pairs.append((broader, VariantKind.BROADENED))

        elif strategy == ExpansionStrategy.FULL:
            expanded, sub_queries, broader = await asyncio.gather(
                self.expand(query, max_variations, want_hypothetical=True),
                self.decompose(query),
                self.step_back(query)
            )
            pairs.extend((v, VariantKind.VARIATION) for v in expanded.variations)
            pairs.extend((q, VariantKind.SUBQUERY) for q in sub_queries)
            pairs.append((broader, VariantKind.BROADENED))
            if expanded.hypothetical_answer:
                pairs.append((expanded.hypothetical_answer, VariantKind.HYPOTHETICAL))

        variants: List[QueryVariant] = []
        seen = set()
        for text, kind in pairs:
            key = " ".join(text.lower().split())
            if not key or key in seen:
                continue
            seen.add(key)
            variants.append(QueryVariant(original_ref=query, text=text, kind=kind))

        logger.info(f"🔀 Expanded query with '{strategy.value}' into {len(variants)} variants")
        return variants
