"""
Inference module initialization.

Exports the text-inference interface and providers.
"""

from .providers import (
    Messages,
    TextInferenceService,
    OpenAIInferenceService,
    parse_json_output
)

__all__ = [
    "Messages",
    "TextInferenceService",
    "OpenAIInferenceService",
    "parse_json_output"
]
