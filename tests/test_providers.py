"""Tests for the OpenAI, Qdrant and HTTP store providers with their clients stubbed."""

import httpx
import pytest
from langchain_core.language_models import FakeListChatModel

from ragcore.config.settings import EmbeddingConfig, LLMConfig, StoreConfig, VectorIndexConfig
from ragcore.core.embeddings import OpenAIEmbeddingService
from ragcore.core.inference import OpenAIInferenceService, parse_json_output
from ragcore.core.store import HTTPStructuredStore
from ragcore.core.vectorstore import QdrantVectorIndex, normalize_score
from ragcore.utils.exceptions import (
    EmbeddingTimeout,
    EmbeddingUnavailable,
    InferenceTimeout,
    InferenceUnavailable,
    MalformedUpstreamOutput,
    StoreUnavailable
)

from conftest import SlowChatModel, SlowEmbeddings


class CountingEmbeddings:
    def __init__(self):
        self.calls = 0

    async def aembed_query(self, text):
        self.calls += 1
        return [float(len(text)), 1.0]


class TestOpenAIEmbeddingService:

    async def test_caches_recent_queries(self):
        client = CountingEmbeddings()
        service = OpenAIEmbeddingService("sk-test", EmbeddingConfig(), cache_size=1, embeddings=client)

        assert await service.embed("abc") == [3.0, 1.0]
        await service.embed("abc")
        assert client.calls == 1

        await service.embed("abcd")
        await service.embed("abc")
        assert client.calls == 3
        assert service.get_cache_stats()["cached_embeddings"] == 1

    async def test_unconfigured_service_raises(self):
        service = OpenAIEmbeddingService("sk-test", EmbeddingConfig(), embeddings=CountingEmbeddings())
        service.embeddings = None

        assert not service.is_configured
        with pytest.raises(EmbeddingUnavailable):
            await service.embed("abc")

    async def test_slow_embedding_times_out(self):
        service = OpenAIEmbeddingService("sk-test", EmbeddingConfig(timeout=0.05), embeddings=SlowEmbeddings())

        with pytest.raises(EmbeddingTimeout):
            await service.embed("abc")


class TestOpenAIInferenceService:

    async def test_complete_json(self):
        llm = FakeListChatModel(responses=['```json\n{"winner": "B"}\n```'])
        service = OpenAIInferenceService("sk-test", LLMConfig(), llm=llm)

        assert await service.rank([{"role": "user", "content": "compare"}]) == {"winner": "B"}

    async def test_complete_json_with_leading_prose(self):
        llm = FakeListChatModel(responses=['Here are the scores:\n```json\n{"scores": [{"index": 1, "score": 0.9}]}\n```'])
        service = OpenAIInferenceService("sk-test", LLMConfig(), llm=llm)

        scores = await service.rank([{"role": "user", "content": "score"}])

        assert scores == {"scores": [{"index": 1, "score": 0.9}]}

    async def test_slow_completion_times_out(self):
        service = OpenAIInferenceService("sk-test", LLMConfig(timeout=0.05), llm=SlowChatModel(responses=["late"]))

        with pytest.raises(InferenceTimeout):
            await service.complete([{"role": "user", "content": "q"}])

    async def test_generate(self):
        llm = FakeListChatModel(responses=["An answer [Source 1]"])
        service = OpenAIInferenceService("sk-test", LLMConfig(), llm=llm)

        assert await service.generate([{"role": "user", "content": "q"}]) == "An answer [Source 1]"

    async def test_unconfigured_service_raises(self):
        service = OpenAIInferenceService("sk-test", LLMConfig(), llm=None)
        service.llm = None

        with pytest.raises(InferenceUnavailable):
            await service.complete([{"role": "user", "content": "q"}])


def test_parse_json_output():
    assert parse_json_output('{"a": 1}') == {"a": 1}
    assert parse_json_output('```\n[1, 2]\n```') == [1, 2]
    with pytest.raises(MalformedUpstreamOutput):
        parse_json_output("not json")
    with pytest.raises(MalformedUpstreamOutput):
        parse_json_output("   ")


def test_parse_json_output_skips_prose_before_the_fence():
    text = 'Here are the scores:\n```json\n{"scores": [{"index": 1, "score": 0.9}]}\n```'

    assert parse_json_output(text) == {"scores": [{"index": 1, "score": 0.9}]}


def test_normalize_score():
    assert normalize_score(0.42, "cosine") == 0.42
    assert normalize_score(-0.3, "cosine") == 0.0
    assert normalize_score(1.7, "dot") == 1.0
    assert normalize_score(0.0, "euclid") == 1.0
    assert normalize_score(1.0, "euclid") == 0.5


class TestQdrantVectorIndex:

    @pytest.fixture
    async def index(self):
        index = QdrantVectorIndex(VectorIndexConfig(location=":memory:", collection_name="test", vector_size=4))
        await index.ensure_collection()
        yield index
        await index.close()

    async def test_namespaces_and_filters(self, index):
        await index.upsert("demo-123", "doc-1", [1.0, 0.0, 0.0, 0.0], {"content": "a", "kind": "note"})
        await index.upsert("demo-123", "doc-2", [0.0, 1.0, 0.0, 0.0], {"content": "b", "kind": "report"})
        await index.upsert("demo-456", "doc-3", [1.0, 0.0, 0.0, 0.0], {"content": "c", "kind": "note"})

        matches = await index.query("demo-123", [1.0, 0.0, 0.0, 0.0], 5)
        assert [m.id for m in matches] == ["doc-1", "doc-2"]
        assert matches[0].score == pytest.approx(1.0)
        assert matches[0].metadata == {"content": "a", "kind": "note"}

        filtered = await index.query("demo-123", [1.0, 0.0, 0.0, 0.0], 5, filter={"kind": "report"})
        assert [m.id for m in filtered] == ["doc-2"]

        assert await index.stats("demo-123") == 2
        assert await index.stats("demo-456") == 1

    async def test_upsert_replaces_and_delete(self, index):
        await index.upsert("cache", "entry", [1.0, 0.0, 0.0, 0.0], {"hit_count": 0})
        await index.upsert("cache", "entry", [1.0, 0.0, 0.0, 0.0], {"hit_count": 1})

        matches = await index.query("cache", [1.0, 0.0, 0.0, 0.0], 1, include_vectors=True)
        assert matches[0].metadata["hit_count"] == 1
        assert matches[0].vector is not None
        assert await index.stats("cache") == 1

        await index.delete("cache", ids=["entry"])
        assert await index.stats("cache") == 0

    async def test_delete_all_only_touches_one_namespace(self, index):
        await index.upsert("a", "1", [1.0, 0.0, 0.0, 0.0], {})
        await index.upsert("b", "1", [1.0, 0.0, 0.0, 0.0], {})

        await index.delete("a", delete_all=True)

        assert await index.stats("a") == 0
        assert await index.stats("b") == 1
        assert await index.health_check()


class TestHTTPStructuredStore:

    def store(self, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HTTPStructuredStore(StoreConfig(url="https://store.example.com/", table="demos"), client=client)

    async def test_get_record(self):
        seen = []

        def handler(request):
            seen.append(request.url)
            return httpx.Response(200, json=[{"id": "demo-123", "summary": "Bakery"}])

        record = await self.store(handler).get_record("demo-123")

        assert record == {"id": "demo-123", "summary": "Bakery"}
        assert seen[0].path == "/rest/v1/demos"
        assert seen[0].params["id"] == "eq.demo-123"

    async def test_missing_record(self):
        store = self.store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_record("nope") is None

    async def test_server_error_raises(self):
        store = self.store(lambda request: httpx.Response(503))

        with pytest.raises(StoreUnavailable):
            await store.get_record("demo-123")
        assert not await store.health_check()

    async def test_unconfigured_store(self):
        store = HTTPStructuredStore(StoreConfig(url=None))

        assert not store.is_configured
        with pytest.raises(StoreUnavailable):
            await store.get_record("demo-123")
        await store.close()
