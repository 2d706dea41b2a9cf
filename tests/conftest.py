"""
Shared fakes for the RAG pipeline tests.

Every external service the pipeline talks to has an in-memory stand-in here
built on the real service interfaces.
"""

import asyncio
import json
import math
import re
import zlib
from typing import Any, Dict, List, Optional, Sequence

import pytest
from langchain_core.language_models import FakeListChatModel

from ragcore.config.models import Candidate
from ragcore.config.settings import (
    CacheConfig,
    ExpansionConfig,
    RAGConfig,
    RerankConfig,
    RetrievalConfig,
    StoreConfig
)
from ragcore.core.embeddings import EmbeddingService
from ragcore.core.inference import TextInferenceService
from ragcore.core.store import StructuredStore
from ragcore.core.vectorstore import VectorIndexService, VectorMatch
from ragcore.utils.exceptions import (
    EmbeddingUnavailable,
    InferenceUnavailable,
    StoreUnavailable,
    VectorIndexUnavailable
)

DIMENSIONS = 64
_WORD = re.compile(r"\w+")


class HashEmbedder(EmbeddingService):
    """Bag-of-words embedder: identical texts embed identically."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EmbeddingUnavailable("embedding service down")

        vector = [0.0] * DIMENSIONS
        for word in _WORD.findall(text.lower()):
            vector[zlib.crc32(word.encode()) % DIMENSIONS] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorIndex(VectorIndexService):
    """Namespace-isolated cosine index; entries may carry a fixed score."""

    metric = "cosine"

    def __init__(self):
        self.namespaces: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.failing_namespaces = set()
        self.queries: List[Dict[str, Any]] = []
        self.ensured = False
        self.closed = False

    def add(
        self,
        namespace: str,
        id: str,
        vector: Sequence[float],
        metadata: Dict[str, Any],
        fixed_score: Optional[float] = None
    ) -> None:
        self.namespaces.setdefault(namespace, {})[id] = {
            "vector": list(vector),
            "metadata": dict(metadata),
            "fixed_score": fixed_score,
        }

    async def query(self, namespace, vector, top_k, filter=None, include_vectors=False):
        self.queries.append({"namespace": namespace, "filter": filter, "top_k": top_k})
        if namespace in self.failing_namespaces:
            raise VectorIndexUnavailable(f"namespace {namespace} unavailable")

        matches = []
        for entry_id, entry in self.namespaces.get(namespace, {}).items():
            metadata = entry["metadata"]
            if filter and any(metadata.get(key) != value for key, value in filter.items()):
                continue
            score = entry["fixed_score"]
            if score is None:
                score = cosine(vector, entry["vector"])
            matches.append(VectorMatch(
                id=entry_id,
                score=score,
                metadata=dict(metadata),
                vector=list(entry["vector"]) if include_vectors else None
            ))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def upsert(self, namespace, id, vector, metadata):
        self.add(namespace, id, vector, metadata)

    async def delete(self, namespace, ids=None, delete_all=False, filter=None):
        entries = self.namespaces.get(namespace, {})
        if delete_all:
            entries.clear()
            return
        for entry_id in list(entries):
            metadata = entries[entry_id]["metadata"]
            if ids is not None and entry_id in ids:
                del entries[entry_id]
            elif filter and all(metadata.get(k) == v for k, v in filter.items()):
                del entries[entry_id]

    async def stats(self, namespace):
        return len(self.namespaces.get(namespace, {}))

    async def ensure_collection(self):
        self.ensured = True

    async def close(self):
        self.closed = True


class ScriptedInference(TextInferenceService):
    """
    Inference fake that answers by prompt kind.

    ``responses`` maps a kind (expansion, decompose, step_back, hyde, strategy,
    judge, pairwise, synthesis) to a string, a JSON-able value, an exception,
    or a callable taking the messages.
    """

    KINDS = (
        ("Analyze and expand this query", "expansion"),
        ("Break down this complex query", "decompose"),
        ("Given this specific query", "step_back"),
        ("Generate a detailed, ideal answer", "hyde"),
        ("Analyze this query and decide retrieval strategy", "strategy"),
        ("Score the relevance of each document", "judge"),
        ("Which document is more relevant", "pairwise"),
    )

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def kind_of(cls, messages: List[Dict[str, str]]) -> str:
        if messages and messages[0]["role"] == "system":
            return "synthesis"
        content = messages[-1]["content"]
        for prefix, kind in cls.KINDS:
            if content.startswith(prefix):
                return kind
        return "unknown"

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def complete(self, messages, temperature=0.7, max_tokens=800, json_mode=False):
        kind = self.kind_of(messages)
        self.calls.append({
            "kind": kind,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if kind not in self.responses:
            raise InferenceUnavailable(f"no scripted response for {kind}")

        response = self.responses[kind]
        if callable(response):
            response = response(messages)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


class DictStore(StructuredStore):
    """Record store backed by a dict."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None, fail: bool = False):
        self.records = dict(records or {})
        self.fail = fail
        self.lookups: List[str] = []
        self.closed = False

    async def get_record(self, record_id):
        self.lookups.append(record_id)
        if self.fail:
            raise StoreUnavailable("store down")
        return self.records.get(record_id)

    async def health_check(self):
        return not self.fail

    async def close(self):
        self.closed = True


class SlowEmbeddings:
    """LangChain-style embeddings client that answers after ``delay`` seconds."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    async def aembed_query(self, text):
        await asyncio.sleep(self.delay)
        return [1.0, 0.0]


class SlowChatModel(FakeListChatModel):
    """Chat model that sleeps before answering."""

    delay: float = 1.0

    async def _agenerate(self, messages, stop=None, run_manager=None, **kwargs):
        await asyncio.sleep(self.delay)
        return await super()._agenerate(messages, stop=stop, run_manager=run_manager, **kwargs)


class SlowQdrantClient:
    """Stands in for AsyncQdrantClient; every query outlives the index timeout."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    async def query_points(self, **kwargs):
        await asyncio.sleep(self.delay)
        raise AssertionError("query should have timed out")

    async def close(self):
        return None


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_candidate(id: str, content: str, score: float, source_type: str = "vector", **metadata) -> Candidate:
    return Candidate(id=id, content=content, source_type=source_type, raw_score=score, metadata=metadata)


@pytest.fixture
def rag_config() -> RAGConfig:
    """Configuration with keyword boosting off so scores stay predictable."""
    return RAGConfig(
        retrieval=RetrievalConfig(default_k=5, retrieval_k=20, keyword_weight=0.0),
        rerank=RerankConfig(batch_size=5),
        cache=CacheConfig(similarity_threshold=0.92, ttl_seconds=3600),
        expansion=ExpansionConfig(strategy="variations", max_variations=2),
        store=StoreConfig(fields={"summary": 0.9, "porter_analysis": 0.95, "profit_insights": 0.85})
    )


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder()


@pytest.fixture
def vector_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
