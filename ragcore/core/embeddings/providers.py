"""
Embedding providers for the RAG pipeline.

Handles embedding model initialization, timeouts and a small in-process
cache of recent query embeddings.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional
from langchain_openai import OpenAIEmbeddings
from ragcore.utils.logging import get_logger
from ragcore.utils.exceptions import EmbeddingUnavailable, EmbeddingTimeout
from ragcore.utils.decorators import with_timeout
from ragcore.config.settings import EmbeddingConfig, get_config

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Abstract base class for embedding services."""

    @property
    def is_configured(self) -> bool:
        """Whether the service has what it needs to serve calls."""
        return True

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingUnavailable: If the service is unconfigured or failing
            EmbeddingTimeout: If the call exceeds its timeout
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class OpenAIEmbeddingService(EmbeddingService):
    """OpenAI embedding service with timeout handling and a query cache."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[EmbeddingConfig] = None,
        cache_size: int = 512,
        embeddings: Optional[OpenAIEmbeddings] = None
    ):
        """
        Initialize the OpenAI embedding service.

        Args:
            api_key: OpenAI API key (defaults to configuration)
            config: Embedding configuration
            cache_size: Number of recent query embeddings kept in memory
            embeddings: Pre-built LangChain embeddings client
        """
        rag_config = get_config()
        self.config = config or rag_config.embedding
        self.api_key = api_key or rag_config.openai_api_key
        self.model_name = self.config.model_name
        self.timeout = self.config.timeout
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()

        if embeddings is not None:
            self.embeddings = embeddings
        elif self.api_key:
            self.embeddings = OpenAIEmbeddings(
                model=self.model_name,
                openai_api_key=self.api_key
            )
        else:
            self.embeddings = None
            logger.warning("⚠️ OpenAI API key is not set. Embeddings will fail until configured.")

        logger.info(f"🤖 Initialized OpenAI embedding service: {self.model_name}")

    @property
    def is_configured(self) -> bool:
        return self.embeddings is not None

    def _remember(self, text: str, vector: List[float]) -> None:
        self._cache[text] = vector
        self._cache.move_to_end(text)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single query text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingUnavailable: If the service is unconfigured or the call fails
            EmbeddingTimeout: If the call exceeds the configured timeout
        """
        if self.embeddings is None:
            raise EmbeddingUnavailable("OPENAI_API_KEY is missing; embeddings are disabled")

        if text in self._cache:
            self._cache.move_to_end(text)
            logger.debug("🎯 Query embedding found in cache")
            return self._cache[text]

        try:
            vector = await with_timeout(
                self.embeddings.aembed_query(text),
                self.timeout,
                EmbeddingTimeout,
                "embedding"
            )
        except EmbeddingTimeout:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Failed to embed query: {str(e)}") from e

        if not vector:
            raise EmbeddingUnavailable("Embedding response was empty")

        self._remember(text, vector)
        logger.debug(f"✅ Query embedding generated for: {text[:50]}...")
        return vector

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "cached_embeddings": len(self._cache),
            "cache_size": self.cache_size,
            "model_name": self.model_name,
        }


def create_embedding_service(provider_type: str = "openai", **kwargs) -> EmbeddingService:
    """
    Create an embedding service instance.

    Args:
        provider_type: Type of provider to create
        **kwargs: Provider-specific arguments

    Returns:
        Embedding service instance

    Raises:
        ValueError: If provider type is not supported
    """
    if provider_type.lower() == "openai":
        return OpenAIEmbeddingService(**kwargs)
    raise ValueError(f"Unsupported embedding provider type: {provider_type}")
