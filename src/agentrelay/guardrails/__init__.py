"""Validators applied to tool input and output."""

from .base import Guardrail, data_to_text
from .builtin import (
    HARMFUL_CONTENT_PATTERNS,
    PII_PATTERNS,
    ClassificationResult,
    ContentClassifier,
    ContentSafetyGuardrail,
    JSONSchemaGuardrail,
    LengthGuardrail,
    PIIGuardrail,
    RateLimitGuardrail,
    RegexContentClassifier,
)
from .chain import GuardrailChain

__all__ = [
    "Guardrail",
    "GuardrailChain",
    "ContentClassifier",
    "ClassificationResult",
    "RegexContentClassifier",
    "ContentSafetyGuardrail",
    "PIIGuardrail",
    "LengthGuardrail",
    "JSONSchemaGuardrail",
    "RateLimitGuardrail",
    "HARMFUL_CONTENT_PATTERNS",
    "PII_PATTERNS",
    "data_to_text",
]
