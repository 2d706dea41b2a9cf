"""
Cache module initialization.

Exports the semantic cache and its helpers.
"""

from .semantic_cache import (
    SemanticCache,
    execute_with_cache,
    generate_cache_key,
    serialize_response
)

__all__ = [
    "SemanticCache",
    "execute_with_cache",
    "generate_cache_key",
    "serialize_response"
]
