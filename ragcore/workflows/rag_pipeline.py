"""
LangGraph pipeline for retrieval-augmented question answering.

Composes guardrails, the semantic cache, strategy selection, query expansion,
multi-source retrieval, dedup, reranking and synthesis into one graph:

    guard_input -> cache_lookup -> (hit) END
                                -> decide -> (no retrieval) synthesize
                                          -> expand -> retrieve -> rerank -> synthesize
    synthesize -> guard_output -> END

Each stage degrades on its own; only input rejection, configuration errors and
synthesis failures reach the caller. Cache writes run after the graph as
detached tasks.
"""

import time
from typing import Any, Callable, Dict, List, Optional
from langgraph.graph import START, END, StateGraph
from ragcore.config.models import (
    ChatMessage,
    PipelineOptions,
    QueryVariant,
    RAGResponse,
    ResponseMetadata,
    RetrievalStrategy,
    SourceFilters,
    VariantKind
)
from ragcore.config.settings import RAGConfig, get_config
from ragcore.core.cache import SemanticCache
from ragcore.core.embeddings import EmbeddingService
from ragcore.core.generation import InputGuardrail, OutputGuardrail, ResponseSynthesizer
from ragcore.core.inference import TextInferenceService
from ragcore.core.reranking import KeywordReranker, SemanticJudgeReranker, keep_original_order
from ragcore.core.retrieval import (
    ExpansionStrategy,
    MultiSourceRetriever,
    QueryExpander,
    RetrievalStrategySelector,
    dedupe_by_fingerprint,
    ensure_diversity
)
from ragcore.core.store import StructuredStore
from ragcore.core.vectorstore import VectorIndexService
from ragcore.utils.decorators import elapsed_ms
from ragcore.utils.exceptions import SecurityRejection
from ragcore.utils.logging import get_logger, log_stage_event
from ragcore.workflows.state import RAGPipelineState

logger = get_logger(__name__)


class RAGPipeline:
    """Pipeline orchestrator exposing ``rag_query``."""

    def __init__(
        self,
        expander: QueryExpander,
        retriever: MultiSourceRetriever,
        selector: RetrievalStrategySelector,
        judge: SemanticJudgeReranker,
        synthesizer: ResponseSynthesizer,
        cache: Optional[SemanticCache] = None,
        keyword_reranker: Optional[KeywordReranker] = None,
        input_guardrail: Optional[InputGuardrail] = None,
        output_guardrail: Optional[OutputGuardrail] = None,
        config: Optional[RAGConfig] = None
    ):
        """
        Initialize the pipeline and compile its graph.

        Args:
            expander: Query expander
            retriever: Multi-source retriever
            selector: Retrieval strategy selector
            judge: Semantic-judge reranker
            synthesizer: Response synthesizer
            cache: Semantic cache (None disables caching)
            keyword_reranker: Keyword reranker
            input_guardrail: Input guardrail
            output_guardrail: Output guardrail
            config: Pipeline configuration
        """
        self.config = config or get_config()
        self.expander = expander
        self.retriever = retriever
        self.selector = selector
        self.judge = judge
        self.synthesizer = synthesizer
        self.cache = cache
        self.keyword_reranker = keyword_reranker or KeywordReranker()
        self.input_guardrail = input_guardrail or InputGuardrail()
        self.output_guardrail = output_guardrail or OutputGuardrail()
        self.graph = self._build_graph()
        logger.info("🔄 Initialized RAG pipeline graph")

    # Options

    def resolve_options(self, options: Optional[PipelineOptions] = None) -> PipelineOptions:
        """Fill unset per-request options from configuration."""
        options = options or PipelineOptions()
        defaults = {
            "use_cache": self.config.cache.enabled and self.cache is not None,
            "use_query_expansion": self.config.expansion.enabled,
            "expansion_strategy": self.config.expansion.strategy,
            "use_guardrails": self.config.guardrails.enabled,
            "top_k": self.config.retrieval.default_k,
            "retrieval_k": self.config.retrieval.retrieval_k,
        }
        updates = {key: value for key, value in defaults.items() if getattr(options, key) is None}
        resolved = options.model_copy(update=updates)
        if self.cache is None:
            resolved = resolved.model_copy(update={"use_cache": False})
        return resolved

    # Nodes

    async def guard_input(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Reject input that fails the injection checks."""
        if not state["options"].use_guardrails:
            return {"input_passed": True}

        result = self.input_guardrail.validate(state["query"])
        if not result.passed:
            log_stage_event(logger, "guardrails", "input_rejected", violations=len(result.violations))
            raise SecurityRejection("Input rejected by guardrails", result.violations)
        return {"input_passed": True}

    async def cache_lookup(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Return a cached response for a semantically similar query, if any."""
        options = state["options"]
        if not options.use_cache:
            return {"cached_response": None}

        start = time.perf_counter()
        cached = None
        entry = await self.cache.get(state["query"], options.tool_id, state["scope_id"])
        if entry is not None:
            try:
                cached = RAGResponse.model_validate_json(entry.serialized_response)
            except ValueError as e:
                logger.warning(f"⚠️ Ignoring unreadable cache entry {entry.id}: {str(e)}")
                cached = None

        return {"cached_response": cached, "latency": {"cache": elapsed_ms(start)}}

    def route_after_cache(self, state: RAGPipelineState) -> str:
        return "hit" if state.get("cached_response") is not None else "miss"

    async def decide(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Decide whether and where to retrieve."""
        start = time.perf_counter()
        decision = await self.selector.decide(state["query"])
        update: Dict[str, Any] = {
            "decision": decision,
            "latency": {"decision": elapsed_ms(start)},
        }
        if decision.is_fallback:
            update["fallbacks"] = ["decision"]
        return update

    def route_after_decision(self, state: RAGPipelineState) -> str:
        return "retrieve" if state["decision"].should_retrieve else "skip"

    async def expand(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Rewrite the query into retrieval variants."""
        options = state["options"]
        query = state["query"]
        original = [QueryVariant(original_ref=query, text=query, kind=VariantKind.ORIGINAL)]

        if not options.use_query_expansion or options.expansion_strategy == ExpansionStrategy.NONE.value:
            return {"variants": original, "latency": {"expansion": 0.0}}

        start = time.perf_counter()
        variants = await self.expander.expand_with_strategy(
            query,
            options.expansion_strategy,
            self.config.expansion.max_variations
        )
        update: Dict[str, Any] = {
            "variants": variants or original,
            "latency": {"expansion": elapsed_ms(start)},
        }
        if len(variants) <= 1:
            update["fallbacks"] = ["expansion"]
        return update

    def source_filters(self, state: RAGPipelineState) -> SourceFilters:
        """Translate the retrieval decision into retriever branches."""
        options = state["options"]
        strategy = state["decision"].strategy
        return SourceFilters(
            namespaces=list(options.namespaces) or [state["scope_id"]],
            metadata_filter=options.metadata_filter,
            record_ids=[state["scope_id"]],
            include_vector=strategy in (RetrievalStrategy.VECTOR, RetrievalStrategy.HYBRID),
            include_structured=strategy in (RetrievalStrategy.DATABASE, RetrievalStrategy.HYBRID)
        )

    async def retrieve(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Gather candidates from every selected source."""
        start = time.perf_counter()
        report = await self.retriever.retrieve_detailed(
            state["variants"],
            self.source_filters(state),
            state["options"].retrieval_k
        )
        update: Dict[str, Any] = {
            "candidates": report.candidates,
            "latency": {"retrieval": elapsed_ms(start)},
        }
        if report.degraded:
            update["fallbacks"] = ["retrieval"]
        return update

    async def rerank(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Dedup, diversify and rerank the candidate pool."""
        options = state["options"]
        top_k = options.top_k
        start = time.perf_counter()

        pool = dedupe_by_fingerprint(state.get("candidates", []), self.config.retrieval.fingerprint_length)
        pool = ensure_diversity(pool, self.config.retrieval.diversity_threshold)

        update: Dict[str, Any] = {}
        if options.use_reranking and len(pool) > top_k:
            ranked = await self.judge.rerank(state["query"], pool, top_k)
            reranker = self.judge.name
            if ranked and all(result.scored_by == "original" for result in ranked):
                update["fallbacks"] = ["reranking"]
        elif pool:
            ranked = await self.keyword_reranker.rerank(state["query"], pool, top_k)
            reranker = self.keyword_reranker.name
        else:
            ranked = keep_original_order(pool, top_k)
            reranker = "none"

        update.update({
            "ranked": ranked,
            "reranker": reranker,
            "latency": {"reranking": elapsed_ms(start)},
        })
        return update

    async def synthesize(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Generate the grounded answer; failures propagate."""
        start = time.perf_counter()
        ranked = state.get("ranked", [])
        synthesis = await self.synthesizer.synthesize(state["query"], ranked, state.get("history"))
        return {
            "ranked": ranked,
            "synthesis": synthesis,
            "answer": synthesis.answer,
            "latency": {"generation": elapsed_ms(start)},
        }

    async def guard_output(self, state: RAGPipelineState) -> Dict[str, Any]:
        """Redact PII from the answer before it is returned."""
        if not state["options"].use_guardrails:
            return {"output_valid": True}

        check = self.output_guardrail.validate(state["answer"], len(state.get("ranked", [])))
        return {"answer": check.safe_output, "output_valid": check.is_valid}

    # Graph

    def _build_graph(self):
        """
        Create the pipeline workflow.

        Returns:
            Compiled LangGraph workflow
        """
        workflow = StateGraph(RAGPipelineState)

        workflow.add_node("guard_input", self.guard_input)
        workflow.add_node("cache_lookup", self.cache_lookup)
        workflow.add_node("decide", self.decide)
        workflow.add_node("expand", self.expand)
        workflow.add_node("retrieve", self.retrieve)
        workflow.add_node("rerank", self.rerank)
        workflow.add_node("synthesize", self.synthesize)
        workflow.add_node("guard_output", self.guard_output)

        workflow.add_edge(START, "guard_input")
        workflow.add_edge("guard_input", "cache_lookup")
        workflow.add_conditional_edges(
            "cache_lookup",
            self.route_after_cache,
            {"hit": END, "miss": "decide"}
        )
        workflow.add_conditional_edges(
            "decide",
            self.route_after_decision,
            {"retrieve": "expand", "skip": "synthesize"}
        )
        workflow.add_edge("expand", "retrieve")
        workflow.add_edge("retrieve", "rerank")
        workflow.add_edge("rerank", "synthesize")
        workflow.add_edge("synthesize", "guard_output")
        workflow.add_edge("guard_output", END)

        return workflow.compile()

    # Entry point

    async def rag_query(
        self,
        query: str,
        scope_id: str,
        options: Optional[PipelineOptions] = None,
        conversation_history: Optional[List[ChatMessage]] = None
    ) -> RAGResponse:
        """
        Answer a query with retrieval-augmented generation.

        Args:
            query: User query
            scope_id: Tenant / business scope (default namespace and record id)
            options: Per-request switches
            conversation_history: Prior conversation turns

        Returns:
            RAGResponse with answer, sources, confidence and metadata

        Raises:
            SecurityRejection: If the input fails the guardrails
            SynthesisError: If the final answer cannot be generated
        """
        start = time.perf_counter()
        resolved = self.resolve_options(options)
        logger.info(f"🚀 RAG query for scope '{scope_id}': {query[:50]}...")

        final_state = await self.graph.ainvoke({
            "query": query,
            "scope_id": scope_id,
            "history": list(conversation_history or []),
            "options": resolved,
            "latency": {},
            "fallbacks": [],
        })

        latency = dict(final_state.get("latency", {}))
        latency["total"] = elapsed_ms(start)
        cached = final_state.get("cached_response")

        if cached is not None:
            response = RAGResponse(
                answer=cached.answer,
                sources=cached.sources,
                confidence=cached.confidence,
                metadata=ResponseMetadata(
                    latency=latency,
                    flags=self._flags(final_state, cache_hit=True)
                )
            )
            log_stage_event(logger, "pipeline", "completed", cache_hit=True, total_ms=latency["total"])
            return response

        synthesis = final_state["synthesis"]
        response = RAGResponse(
            answer=final_state["answer"],
            sources=final_state.get("ranked", []),
            confidence=synthesis.confidence,
            metadata=ResponseMetadata(
                latency=latency,
                flags=self._flags(final_state, cache_hit=False)
            )
        )

        if resolved.use_cache:
            self.cache.set_in_background(query, response, resolved.tool_id, scope_id)

        log_stage_event(
            logger, "pipeline", "completed",
            cache_hit=False,
            sources=len(response.sources),
            confidence=round(response.confidence, 3),
            total_ms=latency["total"]
        )
        return response

    def _flags(self, state: RAGPipelineState, cache_hit: bool) -> Dict[str, Any]:
        decision = state.get("decision")
        synthesis = state.get("synthesis")
        return {
            "cache_hit": cache_hit,
            "query_expanded": len(state.get("variants", [])) > 1,
            "reranked": state.get("reranker") == self.judge.name
            and "reranking" not in state.get("fallbacks", []),
            "reranker": state.get("reranker"),
            "retrieval_strategy": decision.strategy.value if decision else None,
            "should_retrieve": decision.should_retrieve if decision else None,
            "candidates": len(state.get("candidates", [])),
            "cited_sources": list(synthesis.cited_indices) if synthesis else [],
            "fallbacks": list(state.get("fallbacks", [])),
            "security": {
                "input_passed": state.get("input_passed", True),
                "output_valid": state.get("output_valid", True),
            },
        }

    async def wait_for_background_tasks(self) -> None:
        """Wait for detached cache writes to finish."""
        if self.cache is not None:
            await self.cache.wait_for_pending()


def build_pipeline(
    embeddings: EmbeddingService,
    vector_index: VectorIndexService,
    inference: TextInferenceService,
    store: Optional[StructuredStore] = None,
    config: Optional[RAGConfig] = None,
    clock: Callable[[], float] = time.time
) -> RAGPipeline:
    """
    Wire pipeline components around the four external services.

    Args:
        embeddings: Embedding service
        vector_index: Vector index service (also holds the cache namespace)
        inference: Text-inference service
        store: Optional structured store
        config: Pipeline configuration
        clock: Wall-clock source for cache TTLs

    Returns:
        RAGPipeline instance
    """
    config = config or get_config()
    cache = SemanticCache(embeddings, vector_index, config.cache, clock=clock) if config.cache.enabled else None

    return RAGPipeline(
        expander=QueryExpander(inference, config.expansion),
        retriever=MultiSourceRetriever(embeddings, vector_index, store, config.retrieval, config.store),
        selector=RetrievalStrategySelector(inference),
        judge=SemanticJudgeReranker(inference, config.rerank),
        synthesizer=ResponseSynthesizer(inference, config.llm),
        cache=cache,
        config=config
    )
