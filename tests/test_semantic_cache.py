"""Tests for the semantic response cache."""

import asyncio
import json

import pytest

from ragcore.config.models import RAGResponse
from ragcore.config.settings import CacheConfig, EmbeddingConfig
from ragcore.core.cache import SemanticCache, execute_with_cache, generate_cache_key, serialize_response
from ragcore.core.embeddings import OpenAIEmbeddingService

from conftest import HashEmbedder, SlowEmbeddings

QUERY = "What are the best selling pastries this month?"


@pytest.fixture
async def cache(embedder, vector_index, clock):
    config = CacheConfig(namespace="cache", similarity_threshold=0.92, ttl_seconds=3600, max_cache_size=100)
    cache = SemanticCache(embedder, vector_index, config, clock=clock)
    yield cache
    await cache.wait_for_pending()


async def test_miss_then_hit(cache, vector_index):
    assert await cache.get(QUERY, "rag_query", "demo-123") is None

    entry_id = await cache.set(QUERY, {"answer": "Croissants"}, "rag_query", "demo-123")
    entry = await cache.get(QUERY, "rag_query", "demo-123")

    assert entry is not None
    assert entry.id == entry_id
    assert json.loads(entry.serialized_response) == {"answer": "Croissants"}
    assert entry.similarity == pytest.approx(1.0)
    assert entry.hit_count == 1

    await cache.wait_for_pending()
    stored = vector_index.namespaces["cache"][entry_id]["metadata"]
    assert stored["hit_count"] == 1

    metrics = cache.metrics()
    assert metrics["hits"] == 1
    assert metrics["misses"] == 1
    assert metrics["saves"] == 1
    assert metrics["hit_rate"] == 0.5


async def test_entries_are_scoped_by_tool_and_scope(cache):
    await cache.set(QUERY, "answer", "rag_query", "demo-123")

    assert await cache.get(QUERY, "rag_query", "demo-456") is None
    assert await cache.get(QUERY, "other_tool", "demo-123") is None


async def test_dissimilar_query_misses(cache):
    await cache.set(QUERY, "answer", "rag_query", "demo-123")

    assert await cache.get("How many employees work weekends?", "rag_query", "demo-123") is None


async def test_expired_entry_is_deleted(cache, clock, vector_index):
    entry_id = await cache.set(QUERY, "answer", "rag_query", "demo-123")

    clock.advance(3601)

    assert await cache.get(QUERY, "rag_query", "demo-123") is None
    assert entry_id not in vector_index.namespaces["cache"]


async def test_entry_at_ttl_boundary_is_still_valid(cache, clock):
    await cache.set(QUERY, "answer", "rag_query", "demo-123")

    clock.advance(3600)

    assert await cache.get(QUERY, "rag_query", "demo-123") is not None


async def test_lookup_failure_is_a_miss(vector_index, clock):
    cache = SemanticCache(HashEmbedder(fail=True), vector_index, CacheConfig(namespace="cache"), clock=clock)

    assert await cache.get(QUERY, "rag_query", "demo-123") is None
    assert await cache.set(QUERY, "answer", "rag_query", "demo-123") is None
    assert cache.metrics()["misses"] == 1
    assert cache.metrics()["saves"] == 0


async def test_background_write(cache):
    response = RAGResponse(answer="Croissants [Source 1]", confidence=0.8)

    task = cache.set_in_background(QUERY, response, "rag_query", "demo-123")
    assert cache.pending_tasks == 1

    await cache.wait_for_pending()

    assert task.done()
    assert cache.pending_tasks == 0
    entry = await cache.get(QUERY, "rag_query", "demo-123")
    assert RAGResponse.model_validate_json(entry.serialized_response).answer == "Croissants [Source 1]"


async def test_slow_embedding_is_a_miss(vector_index, clock):
    embedder = OpenAIEmbeddingService("sk-test", EmbeddingConfig(timeout=0.05), embeddings=SlowEmbeddings())
    cache = SemanticCache(embedder, vector_index, CacheConfig(namespace="cache"), clock=clock)

    assert await cache.get(QUERY, "rag_query", "demo-123") is None
    assert cache.metrics()["misses"] == 1
    assert vector_index.queries == []


async def test_background_write_outlives_cancelled_caller(vector_index, clock):
    cache = SemanticCache(HashEmbedder(delay=0.05), vector_index, CacheConfig(namespace="cache"), clock=clock)
    issued = asyncio.Event()

    async def handle_request():
        cache.set_in_background(QUERY, "answer", "rag_query", "demo-123")
        issued.set()
        await asyncio.sleep(10)

    request = asyncio.create_task(handle_request())
    await issued.wait()
    request.cancel()
    with pytest.raises(asyncio.CancelledError):
        await request

    assert cache.pending_tasks == 1
    await cache.wait_for_pending()

    assert cache.metrics()["saves"] == 1
    assert await cache.get(QUERY, "rag_query", "demo-123") is not None
    await cache.wait_for_pending()


async def test_hit_count_update_outlives_cancelled_caller(vector_index, clock):
    cache = SemanticCache(HashEmbedder(), vector_index, CacheConfig(namespace="cache"), clock=clock)
    entry_id = await cache.set(QUERY, "answer", "rag_query", "demo-123")
    issued = asyncio.Event()

    async def handle_request():
        assert await cache.get(QUERY, "rag_query", "demo-123") is not None
        issued.set()
        await asyncio.sleep(10)

    request = asyncio.create_task(handle_request())
    await issued.wait()
    request.cancel()
    with pytest.raises(asyncio.CancelledError):
        await request

    await cache.wait_for_pending()

    assert vector_index.namespaces["cache"][entry_id]["metadata"]["hit_count"] == 1


async def test_over_capacity_counts_eviction(embedder, vector_index, clock):
    cache = SemanticCache(embedder, vector_index, CacheConfig(namespace="cache", max_cache_size=1), clock=clock)

    await cache.set("first question", "a", "rag_query", "demo-123")
    await cache.set("second question", "b", "rag_query", "demo-123")

    assert cache.metrics()["evictions"] == 1


async def test_clear_by_scope(cache, vector_index):
    await cache.set(QUERY, "a", "rag_query", "demo-123")
    await cache.set(QUERY, "b", "rag_query", "demo-456")

    assert await cache.clear(scope_id="demo-123")

    scopes = [e["metadata"]["scope_id"] for e in vector_index.namespaces["cache"].values()]
    assert scopes == ["demo-456"]

    assert await cache.clear()
    assert vector_index.namespaces["cache"] == {}


async def test_reset_metrics(cache):
    await cache.get(QUERY, "rag_query", "demo-123")
    cache.reset_metrics()

    assert cache.metrics()["total"] == 0
    assert cache.metrics()["hit_rate"] == 0.0


def test_generate_cache_key_ignores_volatile_fields():
    a = generate_cache_key("lookup", {"b": 2, "a": 1, "timestamp": 123, "requestId": "r1"})
    b = generate_cache_key("lookup", {"a": 1, "b": 2, "sessionId": "s9"})

    assert a == b == 'lookup:{"a": 1, "b": 2}'


def test_generate_cache_key_truncates_long_inputs():
    key = generate_cache_key("lookup", {"text": "x" * 1000})
    assert key.endswith("...")
    assert len(key) == len("lookup:") + 500 + 3


def test_serialize_response():
    assert serialize_response("plain") == "plain"
    assert json.loads(serialize_response({"a": 1})) == {"a": 1}
    assert json.loads(serialize_response(RAGResponse(answer="x", confidence=0.5)))["answer"] == "x"


async def test_execute_with_cache(cache):
    calls = []

    async def produce():
        calls.append(1)
        return {"total": 42}

    result, from_cache = await execute_with_cache(cache, "sales total", "lookup", "demo-123", produce)
    assert (result, from_cache) == ({"total": 42}, False)

    await cache.wait_for_pending()

    result, from_cache = await execute_with_cache(cache, "sales total", "lookup", "demo-123", produce)
    assert (result, from_cache) == ({"total": 42}, True)
    assert len(calls) == 1

    _, from_cache = await execute_with_cache(cache, "sales total", "lookup", "demo-123", produce, bypass=True)
    assert not from_cache
    assert len(calls) == 2
