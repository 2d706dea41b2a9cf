"""
Semantic cache for pipeline responses.

Cached (query -> response) pairs live in the vector index under a dedicated
namespace. A lookup embeds the query and accepts the nearest entry only when it
is similar enough and younger than its TTL. The cache is best effort: lookups
degrade to misses and writes never raise.

Writes and hit-count updates run as detached tasks. The cache keeps a strong
reference to each one so they survive the request that issued them.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Coroutine, Dict, Optional, Set, Tuple
from pydantic import BaseModel
from ragcore.config.models import CacheEntry
from ragcore.config.settings import CacheConfig, get_config
from ragcore.core.embeddings import EmbeddingService
from ragcore.core.vectorstore import VectorIndexService, normalize_score
from ragcore.utils.logging import get_logger, log_stage_event

logger = get_logger(__name__)

VOLATILE_KEY_FIELDS = ("timestamp", "requestId", "userId", "sessionId")
MAX_KEY_LENGTH = 500


def serialize_response(response: Any) -> str:
    """Serialize a response for storage in the cache payload."""
    if isinstance(response, BaseModel):
        return response.model_dump_json()
    if isinstance(response, str):
        return response
    return json.dumps(response, default=str)


class SemanticCache:
    """Similarity-keyed response cache backed by the vector index."""

    def __init__(
        self,
        embeddings: EmbeddingService,
        vector_index: VectorIndexService,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the semantic cache.

        Args:
            embeddings: Embedding service used to key entries
            vector_index: Vector index holding the cache namespace
            config: Cache configuration
            clock: Wall-clock source in seconds
        """
        self.embeddings = embeddings
        self.vector_index = vector_index
        self.config = config or get_config().cache
        self.namespace = self.config.namespace
        self.similarity_threshold = self.config.similarity_threshold
        self.ttl_seconds = self.config.ttl_seconds
        self.max_cache_size = self.config.max_cache_size
        self.clock = clock
        self._background: Set[asyncio.Task] = set()
        self._metrics = {"hits": 0, "misses": 0, "saves": 0, "evictions": 0}
        logger.info(
            f"💾 Initialized semantic cache: namespace={self.namespace} "
            f"threshold={self.similarity_threshold} ttl={self.ttl_seconds}s"
        )

    # Background tasks

    def _spawn(self, work: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        task = asyncio.create_task(work)
        task.set_name(f"semantic-cache:{label}")
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning(f"⚠️ Cache task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Cache task {task.get_name()} failed: {str(error)}")

    @property
    def pending_tasks(self) -> int:
        """Number of detached cache tasks still running."""
        return len(self._background)

    async def wait_for_pending(self) -> None:
        """Wait until every detached write and hit-count update has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Lookups

    async def get(self, query: str, tool_id: str, scope_id: str) -> Optional[CacheEntry]:
        """
        Find a cached response for a semantically similar query.

        Args:
            query: Query text
            tool_id: Tool the response was produced by
            scope_id: Tenant / business scope

        Returns:
            The cached entry (with its hit count already incremented), or None
        """
        try:
            vector = await self.embeddings.embed(query)
            matches = await self.vector_index.query(
                self.namespace,
                vector,
                1,
                filter={"tool_id": tool_id, "scope_id": scope_id},
                include_vectors=True
            )

            if matches:
                match = matches[0]
                similarity = normalize_score(match.score, self.vector_index.metric)

                if similarity >= self.similarity_threshold:
                    entry = CacheEntry.from_match(match.id, match.metadata, match.vector, similarity)
                    now = self.clock()

                    if not entry.is_expired(now):
                        self._metrics["hits"] += 1
                        log_stage_event(
                            logger, "cache", "hit",
                            similarity=round(similarity, 4), age=round(entry.age(now), 1)
                        )
                        self._spawn(self._increment_hit_count(entry), f"hit:{entry.id}")
                        return entry.model_copy(update={"hit_count": entry.hit_count + 1})

                    log_stage_event(logger, "cache", "expired", age=round(entry.age(now), 1))
                    await self.delete(entry.id)
                else:
                    log_stage_event(
                        logger, "cache", "below_threshold",
                        similarity=round(similarity, 4), threshold=self.similarity_threshold
                    )

            self._metrics["misses"] += 1
            log_stage_event(logger, "cache", "miss")
            return None

        except Exception as e:
            self._metrics["misses"] += 1
            log_stage_event(
                logger, "cache", "miss",
                level=logging.WARNING, error=type(e).__name__, detail=str(e)
            )
            return None

    async def _increment_hit_count(self, entry: CacheEntry) -> None:
        """Rewrite the entry's payload with one more hit."""
        if not entry.embedding_vector:
            return
        bumped = entry.model_copy(update={"hit_count": entry.hit_count + 1})
        await self.vector_index.upsert(
            self.namespace,
            entry.id,
            entry.embedding_vector,
            bumped.to_metadata()
        )

    # Writes

    async def set(self, query: str, response: Any, tool_id: str, scope_id: str) -> Optional[str]:
        """
        Cache a response under a freshly generated id.

        Near-duplicate queries may end up with separate entries; lookups only
        ever see the nearest one.

        Args:
            query: Query text
            response: Response to cache (pydantic model, string or JSON-able value)
            tool_id: Tool that produced the response
            scope_id: Tenant / business scope

        Returns:
            The new entry id, or None if the write failed
        """
        try:
            vector = await self.embeddings.embed(query)
            entry = CacheEntry(
                id=str(uuid.uuid4()),
                embedding_vector=vector,
                original_query_text=query,
                serialized_response=serialize_response(response),
                tool_id=tool_id,
                scope_id=scope_id,
                created_at=self.clock(),
                ttl_seconds=self.ttl_seconds
            )
            await self.vector_index.upsert(self.namespace, entry.id, vector, entry.to_metadata())
            self._metrics["saves"] += 1
            log_stage_event(logger, "cache", "saved", entry_id=entry.id, query=query[:50])
        except Exception as e:
            log_stage_event(
                logger, "cache", "save_failed",
                level=logging.ERROR, error=type(e).__name__, detail=str(e)
            )
            return None

        await self._check_capacity()
        return entry.id

    def set_in_background(self, query: str, response: Any, tool_id: str, scope_id: str) -> asyncio.Task:
        """
        Schedule ``set`` as a detached task.

        The caller never awaits the write; cancelling the caller does not
        cancel it.

        Returns:
            The scheduled task
        """
        return self._spawn(self.set(query, response, tool_id, scope_id), "set")

    async def _check_capacity(self) -> None:
        """Warn when the namespace grows past its configured size."""
        try:
            count = await self.vector_index.stats(self.namespace)
        except Exception as e:
            logger.error(f"❌ Error checking cache size: {str(e)}")
            return

        if count > self.max_cache_size:
            # Entries are only removed when they expire on read.
            self._metrics["evictions"] += 1
            log_stage_event(
                logger, "cache", "over_capacity",
                level=logging.WARNING, count=count, limit=self.max_cache_size
            )

    # Administration

    async def delete(self, entry_id: str) -> bool:
        """
        Delete one cache entry.

        Returns:
            True if the delete call succeeded
        """
        try:
            await self.vector_index.delete(self.namespace, ids=[entry_id])
            return True
        except Exception as e:
            logger.error(f"❌ Error deleting cache entry {entry_id}: {str(e)}")
            return False

    async def clear(self, tool_id: Optional[str] = None, scope_id: Optional[str] = None) -> bool:
        """
        Clear every entry, or only those matching a tool and/or scope.

        Returns:
            True if the delete call succeeded
        """
        metadata_filter = {
            key: value
            for key, value in (("tool_id", tool_id), ("scope_id", scope_id))
            if value is not None
        }
        try:
            if metadata_filter:
                await self.vector_index.delete(self.namespace, filter=metadata_filter)
            else:
                await self.vector_index.delete(self.namespace, delete_all=True)
        except Exception as e:
            logger.error(f"❌ Error clearing cache: {str(e)}")
            return False

        logger.info(f"🧹 Cleared cache entries (filter={metadata_filter or 'all'})")
        return True

    def metrics(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Counters plus total lookups and hit rate
        """
        total = self._metrics["hits"] + self._metrics["misses"]
        return {
            **self._metrics,
            "total": total,
            "hit_rate": self._metrics["hits"] / total if total else 0.0,
            "pending_writes": self.pending_tasks,
        }

    def reset_metrics(self) -> None:
        """Reset all counters to zero."""
        self._metrics = {"hits": 0, "misses": 0, "saves": 0, "evictions": 0}


def generate_cache_key(tool_id: str, inputs: Dict[str, Any]) -> str:
    """
    Build a stable cache key from tool inputs.

    Keys are sorted and per-request fields (timestamps, request, user and
    session ids) are dropped so equivalent requests share a key.

    Args:
        tool_id: Tool identifier
        inputs: Tool input values

    Returns:
        Cache key text
    """
    stable = {key: inputs[key] for key in sorted(inputs) if key not in VOLATILE_KEY_FIELDS}
    input_str = json.dumps(stable, sort_keys=True, default=str)
    if len(input_str) > MAX_KEY_LENGTH:
        input_str = input_str[:MAX_KEY_LENGTH] + "..."
    return f"{tool_id}:{input_str}"


async def execute_with_cache(
    cache: Optional[SemanticCache],
    cache_key: str,
    tool_id: str,
    scope_id: str,
    execute: Callable[[], Awaitable[Any]],
    bypass: bool = False
) -> Tuple[Any, bool]:
    """
    Run ``execute`` behind the semantic cache.

    On a hit the cached value is decoded from JSON; on a miss the fresh result
    is written back in the background.

    Args:
        cache: Semantic cache, or None to always execute
        cache_key: Text the entry is keyed on
        tool_id: Tool identifier
        scope_id: Tenant / business scope
        execute: Producer of the fresh result
        bypass: Skip the cache entirely

    Returns:
        Tuple of (result, from_cache)
    """
    if bypass or cache is None:
        return await execute(), False

    cached = await cache.get(cache_key, tool_id, scope_id)
    if cached is not None:
        try:
            return json.loads(cached.serialized_response), True
        except ValueError:
            return cached.serialized_response, True

    result = await execute()
    cache.set_in_background(cache_key, result, tool_id, scope_id)
    return result, False
