"""
Input and output guardrails.

Input checks look for prompt-injection phrasing and obfuscation; output checks
detect and redact personal data before an answer leaves the pipeline.
"""

import re
from typing import List, Optional
from pydantic import BaseModel, Field
from ragcore.utils.logging import get_logger

logger = get_logger(__name__)

INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?above", re.IGNORECASE),
    re.compile(r"forget\s+(everything|all)", re.IGNORECASE),
    re.compile(r"new\s+instructions?:", re.IGNORECASE),
    re.compile(r"system\s*:\s*", re.IGNORECASE),
    re.compile(r"\[SYSTEM\]", re.IGNORECASE),
    re.compile(r"<\|im_start\|>", re.IGNORECASE),
    re.compile(r"<\|im_end\|>", re.IGNORECASE),
    re.compile(r"__start__", re.IGNORECASE),
    re.compile(r"__end__", re.IGNORECASE),
]

PATTERN_PENALTY = 0.3
SPECIAL_CHAR_RATIO = 0.3
SPECIAL_CHAR_PENALTY = 0.2
MAX_INPUT_LENGTH = 10000
LENGTH_PENALTY = 0.1
PASS_CONFIDENCE = 0.5

_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9\s]")
_SANITIZE_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions", re.IGNORECASE),
    re.compile(r"\[SYSTEM\]", re.IGNORECASE),
    re.compile(r"<\|im_start\|>|<\|im_end\|>", re.IGNORECASE),
]

# (name, pattern, replacement); order matters: SSNs and card numbers before phones.
PII_RULES = [
    ("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "XXX-XX-XXXX"),
    ("credit_card", re.compile(r"\b\d{16}\b"), "XXXX-XXXX-XXXX-XXXX"),
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL REDACTED]"),
    ("phone", re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "XXX-XXX-XXXX"),
    ("ip_address", re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "X.X.X.X"),
]

_CITATION = re.compile(r"\[Source (\d+)\]", re.IGNORECASE)


class GuardrailResult(BaseModel):
    """Outcome of an input check."""

    passed: bool
    violations: List[str] = Field(default_factory=list)
    sanitized: str = ""
    confidence: float = Field(ge=0, le=1)


class OutputCheck(BaseModel):
    """Outcome of an output check."""

    is_valid: bool
    has_pii: bool = False
    pii_types: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    safe_output: str


class InputGuardrail:
    """Prompt-injection screening for user input."""

    def sanitize(self, text: str) -> str:
        """Strip known injection phrases and normalize whitespace."""
        sanitized = text
        for pattern in _SANITIZE_PATTERNS:
            sanitized = pattern.sub("", sanitized)
        return " ".join(sanitized.split())

    def validate(self, text: str) -> GuardrailResult:
        """
        Score user input for injection attempts.

        Each matching injection pattern costs 0.3 confidence, a high share of
        special characters 0.2 and an oversized input 0.1. Input passes while
        confidence stays above 0.5.

        Args:
            text: User input

        Returns:
            GuardrailResult
        """
        violations = []
        confidence = 1.0

        for pattern in INJECTION_PATTERNS:
            if pattern.search(text):
                violations.append(f"Suspicious pattern detected: {pattern.pattern}")
                confidence -= PATTERN_PENALTY

        special_ratio = len(_SPECIAL_CHARS.findall(text)) / len(text) if text else 0.0
        if special_ratio > SPECIAL_CHAR_RATIO:
            violations.append("Excessive special characters")
            confidence -= SPECIAL_CHAR_PENALTY

        if len(text) > MAX_INPUT_LENGTH:
            violations.append("Input exceeds recommended length")
            confidence -= LENGTH_PENALTY

        confidence = round(max(0.0, confidence), 4)
        result = GuardrailResult(
            passed=confidence > PASS_CONFIDENCE,
            violations=violations,
            sanitized=self.sanitize(text),
            confidence=confidence
        )
        if violations:
            logger.warning(f"🛡️ Input guardrail flagged {len(violations)} issue(s), passed={result.passed}")
        return result


def detect_pii(text: str) -> List[str]:
    """Names of the PII types present in a text."""
    return [name for name, pattern, _ in PII_RULES if pattern.search(text)]


def redact_pii(text: str) -> str:
    """Replace every detected PII value with a placeholder."""
    redacted = text
    for _, pattern, replacement in PII_RULES:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class OutputGuardrail:
    """PII and citation checks for generated answers."""

    def validate(self, text: str, source_count: Optional[int] = None) -> OutputCheck:
        """
        Check an answer before it is returned.

        Args:
            text: Generated answer
            source_count: Number of sources the answer could cite

        Returns:
            OutputCheck whose ``safe_output`` has PII redacted
        """
        issues = []
        pii_types = detect_pii(text)
        if pii_types:
            issues.append(f"Contains potential PII: {', '.join(pii_types)}")

        if source_count is not None:
            missing = sorted({
                int(n) for n in _CITATION.findall(text)
                if int(n) < 1 or int(n) > source_count
            })
            if missing:
                issues.append(f"Citations reference missing sources: {missing}")

        if issues:
            logger.warning(f"🛡️ Output guardrail flagged: {'; '.join(issues)}")

        return OutputCheck(
            is_valid=not issues,
            has_pii=bool(pii_types),
            pii_types=pii_types,
            issues=issues,
            safe_output=redact_pii(text) if pii_types else text
        )
