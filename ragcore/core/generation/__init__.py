"""
Generation module initialization.

Exports the response synthesizer and the input/output guardrails.
"""

from .synthesizer import (
    ResponseSynthesizer,
    compute_confidence,
    cited_indices,
    format_context
)

from .guardrails import (
    GuardrailResult,
    OutputCheck,
    InputGuardrail,
    OutputGuardrail,
    detect_pii,
    redact_pii
)

__all__ = [
    "ResponseSynthesizer",
    "compute_confidence",
    "cited_indices",
    "format_context",
    "GuardrailResult",
    "OutputCheck",
    "InputGuardrail",
    "OutputGuardrail",
    "detect_pii",
    "redact_pii"
]
