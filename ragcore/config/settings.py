"""
Environment settings and configuration management.

Provides centralized configuration using Pydantic settings for type safety
and validation. Each group reads its own environment prefix.
"""

from functools import lru_cache
from typing import Dict, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from ragcore.utils.exceptions import ConfigurationError

# Load environment variables
load_dotenv()


class EmbeddingConfig(BaseSettings):
    """Embedding model configuration."""

    model_name: str = Field(default="text-embedding-3-small")
    timeout: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_", extra="ignore")


class LLMConfig(BaseSettings):
    """Large Language Model configuration."""

    model_name: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.7)
    max_tokens: int = Field(default=600)
    timeout: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore")


class VectorIndexConfig(BaseSettings):
    """Vector index (Qdrant) configuration."""

    url: str = Field(default="http://localhost:6333")
    api_key: Optional[str] = Field(default=None)
    location: Optional[str] = Field(default=None, description="e.g. ':memory:' for local mode")
    collection_name: str = Field(default="ragcore")
    vector_size: int = Field(default=1536)
    distance: str = Field(default="cosine")
    timeout: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="QDRANT_", extra="ignore")


class StoreConfig(BaseSettings):
    """Structured store configuration (PostgREST-compatible endpoint)."""

    url: Optional[str] = Field(default=None)
    api_key: Optional[str] = Field(default=None)
    table: str = Field(default="demos")
    timeout: float = Field(default=5.0, gt=0)
    fields: Dict[str, float] = Field(
        default_factory=lambda: {
            "summary": 0.9,
            "porter_analysis": 0.95,
            "profit_insights": 0.85,
        }
    )

    model_config = SettingsConfigDict(env_prefix="STORE_", extra="ignore")


class RetrievalConfig(BaseSettings):
    """Retrieval strategy configuration."""

    default_k: int = Field(default=5, ge=1)
    retrieval_k: int = Field(default=20, ge=1)
    keyword_weight: float = Field(default=0.3, ge=0, le=1)
    min_quality_score: float = Field(default=0.0, ge=0, le=1)
    diversity_threshold: float = Field(default=0.85, gt=0, le=1)
    fingerprint_length: int = Field(default=200, ge=1)

    model_config = SettingsConfigDict(env_prefix="RETRIEVAL_", extra="ignore")


class RerankConfig(BaseSettings):
    """Reranker configuration."""

    batch_size: int = Field(default=5, ge=1)
    score_threshold: float = Field(default=0.0, ge=0, le=1)
    max_pairwise_pool: int = Field(default=6, ge=2)

    model_config = SettingsConfigDict(env_prefix="RERANK_", extra="ignore")


class CacheConfig(BaseSettings):
    """Semantic cache configuration."""

    enabled: bool = Field(default=True)
    namespace: str = Field(default="semantic-cache")
    similarity_threshold: float = Field(default=0.92, ge=0, le=1)
    ttl_seconds: int = Field(default=86400, gt=0)
    max_cache_size: int = Field(default=10000, ge=1)

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")


class ExpansionConfig(BaseSettings):
    """Query expansion configuration."""

    enabled: bool = Field(default=True)
    strategy: str = Field(default="variations")
    max_variations: int = Field(default=2, ge=0)

    model_config = SettingsConfigDict(env_prefix="EXPANSION_", extra="ignore")


class GuardrailConfig(BaseSettings):
    """Input/output guardrail configuration."""

    enabled: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="GUARDRAIL_", extra="ignore")


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")


class APIConfig(BaseSettings):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore")


class RAGConfig(BaseSettings):
    """Main RAG pipeline configuration."""

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    vector_index: VectorIndexConfig = Field(default_factory=VectorIndexConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    rerank: RerankConfig = Field(default_factory=RerankConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    expansion: ExpansionConfig = Field(default_factory=ExpansionConfig)
    guardrails: GuardrailConfig = Field(default_factory=GuardrailConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    # API Keys
    openai_api_key: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> RAGConfig:
    """Get the process-wide configuration instance."""
    return RAGConfig()


def validate_api_keys(config: Optional[RAGConfig] = None) -> None:
    """
    Validate that required API keys are present.

    Raises:
        ConfigurationError: If a required key is missing
    """
    config = config or get_config()
    required_keys = ["openai_api_key"]
    missing_keys = [key for key in required_keys if not getattr(config, key)]

    if missing_keys:
        raise ConfigurationError(f"Missing required API keys: {', '.join(missing_keys)}")
