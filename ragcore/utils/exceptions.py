"""
Custom exceptions for the RAG pipeline.

Provides specific exception types for each failure class. Only
ConfigurationError, SecurityRejection and SynthesisError are expected to reach
callers; the upstream errors are caught by the stage that owns the call and
turned into a degraded result.
"""


class RAGException(Exception):
    """Base exception for RAG pipeline errors."""
    pass


class ConfigurationError(RAGException):
    """Raised when configuration is invalid or missing."""
    pass


class APIKeyError(ConfigurationError):
    """Raised when API keys are missing or invalid."""
    pass


class UpstreamUnavailable(RAGException):
    """Raised when an external service cannot serve a call."""
    pass


class UpstreamTimeout(RAGException):
    """Raised when an external call exceeds its timeout."""
    pass


class EmbeddingUnavailable(UpstreamUnavailable):
    """Raised when the embedding service is unconfigured or failing."""
    pass


class EmbeddingTimeout(UpstreamTimeout):
    """Raised when an embedding call times out."""
    pass


class InferenceUnavailable(UpstreamUnavailable):
    """Raised when the text-inference service is unconfigured or failing."""
    pass


class InferenceTimeout(UpstreamTimeout):
    """Raised when a text-inference call times out."""
    pass


class VectorIndexUnavailable(UpstreamUnavailable):
    """Raised when vector index operations fail."""
    pass


class VectorIndexTimeout(UpstreamTimeout):
    """Raised when a vector index call times out."""
    pass


class StoreUnavailable(UpstreamUnavailable):
    """Raised when the structured store cannot be read."""
    pass


class StoreTimeout(UpstreamTimeout):
    """Raised when a structured store lookup times out."""
    pass


class MalformedUpstreamOutput(RAGException):
    """Raised when an upstream response cannot be parsed (e.g. non-JSON in JSON mode)."""
    pass


class SecurityRejection(RAGException):
    """Raised when input fails the guardrail checks."""

    def __init__(self, message: str, violations=None):
        super().__init__(message)
        self.violations = list(violations or [])


class GenerationError(RAGException):
    """Raised when text generation fails."""
    pass


class SynthesisError(GenerationError):
    """Raised when the final answer cannot be synthesized."""
    pass
