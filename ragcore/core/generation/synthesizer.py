"""
Grounded answer synthesis.

Turns ranked context into a cited answer through the inference service's
``generate`` operation and scores how much the answer can be trusted.
"""

import re
from typing import Any, Dict, List, Optional, Sequence
from ragcore.chains.prompts import get_synthesis_prompt, render_messages
from ragcore.config.models import ChatMessage, RankedResult, SynthesisResult
from ragcore.config.settings import LLMConfig, get_config
from ragcore.core.inference import TextInferenceService
from ragcore.utils.decorators import clamp, timing_decorator
from ragcore.utils.exceptions import SynthesisError
from ragcore.utils.logging import get_logger, log_stage_event

logger = get_logger(__name__)

MAX_CONFIDENCE = 0.95
NO_SOURCE_CONFIDENCE = 0.3
UNCITED_PENALTY = 0.8
NO_CONTEXT_NOTICE = "No specific context retrieved - acknowledge this limitation"

_CITATION = re.compile(r"\[Source (\d+)\]")


def compute_confidence(final_scores: Sequence[float], answer: str) -> float:
    """
    Calibrated confidence for an answer.

    The mean relevance of the sources used, reduced by 20% when the answer
    cites none of them. Without sources the confidence is a flat 0.3. The
    result never exceeds 0.95.

    Args:
        final_scores: Relevance of each source given to the model
        answer: Generated answer text

    Returns:
        Confidence in [0, 0.95]
    """
    if not final_scores:
        return NO_SOURCE_CONFIDENCE

    confidence = sum(clamp(score) for score in final_scores) / len(final_scores)
    if not _CITATION.search(answer or ""):
        confidence *= UNCITED_PENALTY
    return clamp(confidence, 0.0, MAX_CONFIDENCE)


def cited_indices(answer: str, source_count: int) -> List[int]:
    """1-based source numbers the answer cites that exist in the context."""
    numbers = sorted({int(n) for n in _CITATION.findall(answer or "")})
    return [n for n in numbers if 1 <= n <= source_count]


def format_context(ranked_results: List[RankedResult]) -> str:
    """Numbered, relevance-annotated source blocks."""
    return "\n\n".join(
        f"[Source {i}] ({result.candidate.source_type}, Relevance: {result.final_score:.2f})\n"
        f"{result.candidate.content}"
        for i, result in enumerate(ranked_results, start=1)
    )


def _history_messages(history: Optional[List[Any]]) -> List[Dict[str, str]]:
    messages = []
    for turn in history or []:
        if isinstance(turn, ChatMessage):
            messages.append({"role": turn.role, "content": turn.content})
        elif isinstance(turn, dict) and "role" in turn and "content" in turn:
            messages.append({"role": turn["role"], "content": turn["content"]})
    return messages


class ResponseSynthesizer:
    """Builds the grounded prompt and scores the resulting answer."""

    def __init__(
        self,
        inference: TextInferenceService,
        config: Optional[LLMConfig] = None
    ):
        """
        Initialize the synthesizer.

        Args:
            inference: Text-inference service
            config: LLM configuration (temperature, max tokens)
        """
        self.inference = inference
        self.config = config or get_config().llm

    def build_messages(
        self,
        query: str,
        ranked_results: List[RankedResult],
        history: Optional[List[Any]] = None
    ) -> List[Dict[str, str]]:
        """Rules, then conversation history, then the context and the query."""
        return render_messages(
            get_synthesis_prompt(),
            context=format_context(ranked_results) or NO_CONTEXT_NOTICE,
            query=query,
            history=_history_messages(history)
        )

    @timing_decorator
    async def synthesize(
        self,
        query: str,
        ranked_results: List[RankedResult],
        history: Optional[List[Any]] = None
    ) -> SynthesisResult:
        """
        Generate a cited answer from ranked context.

        Args:
            query: Query text
            ranked_results: Context, best first
            history: Prior conversation turns

        Returns:
            SynthesisResult

        Raises:
            SynthesisError: If the inference call fails or returns nothing
        """
        messages = self.build_messages(query, ranked_results, history)

        try:
            answer = await self.inference.generate(
                messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens
            )
        except Exception as e:
            log_stage_event(logger, "generation", "failed", error=type(e).__name__)
            raise SynthesisError(f"Failed to synthesize answer: {str(e)}") from e

        answer = answer.strip()
        confidence = compute_confidence([r.final_score for r in ranked_results], answer)
        result = SynthesisResult(
            answer=answer,
            confidence=confidence,
            cited_indices=cited_indices(answer, len(ranked_results))
        )
        log_stage_event(
            logger, "generation", "synthesized",
            sources=len(ranked_results), cited=len(result.cited_indices),
            confidence=round(confidence, 3)
        )
        return result
