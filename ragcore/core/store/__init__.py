"""
Structured store module initialization.

Exports the read-only record store interface and its HTTP provider.
"""

from .records import (
    StructuredStore,
    HTTPStructuredStore
)

__all__ = [
    "StructuredStore",
    "HTTPStructuredStore"
]
