"""
Built-in guardrails: content safety, PII, length, JSON schema and rate limit.
"""

import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Pattern, Union

import jsonschema

from ..agents.exceptions import (
    AgentConfigurationError,
    RateLimitError,
    SecurityError,
    ValidationError,
)
from ..agents.utils import compile_schema, validate_data
from .base import Guardrail, data_to_text

logger = logging.getLogger(__name__)


# =============================================================================
# CONTENT SAFETY
# =============================================================================

@dataclass(frozen=True)
class ClassificationResult:
    ok: bool
    violation_kind: Optional[str] = None
    detail: Optional[str] = None


class ContentClassifier(ABC):
    """Decides whether a piece of text is safe to pass through."""

    @abstractmethod
    def classify(self, text: str) -> ClassificationResult:
        pass


HARMFUL_CONTENT_PATTERNS: Dict[str, List[str]] = {
    "violence": [
        r"\b(?:kill|murder|stab|shoot|assault)\s+(?:him|her|them|you|someone|people|everyone)\b",
        r"\bhow\s+to\s+(?:kill|murder|torture)\b",
    ],
    "self_harm": [
        r"\b(?:kill|hurt|harm)\s+myself\b",
        r"\bend\s+my\s+(?:own\s+)?life\b",
        r"\bself[-\s]?harm\b",
    ],
    "weapons": [
        r"\b(?:build|make|assemble)\s+(?:a\s+|an\s+)?(?:bomb|explosive|pipe\s+bomb|bioweapon)\b",
        r"\bsynthesi[sz]e\s+(?:nerve\s+agent|sarin|ricin)\b",
    ],
    "hate": [
        r"\b(?:exterminate|eradicate)\s+(?:all\s+)?(?:the\s+)?[a-z]+s\b",
        r"\bethnic\s+cleansing\b",
    ],
}


class RegexContentClassifier(ContentClassifier):
    """
    Flags text matching any of a fixed set of regular expressions.

    Args:
        patterns: Mapping of violation kind -> list of regexes
                  (defaults to ``HARMFUL_CONTENT_PATTERNS``)
    """

    def __init__(self, patterns: Optional[Dict[str, List[Union[str, Pattern]]]] = None) -> None:
        source = patterns if patterns is not None else HARMFUL_CONTENT_PATTERNS
        self.patterns: Dict[str, List[Pattern]] = {
            kind: [re.compile(p, re.IGNORECASE) if isinstance(p, str) else p for p in regexes]
            for kind, regexes in source.items()
        }

    def classify(self, text: str) -> ClassificationResult:
        for kind, regexes in self.patterns.items():
            for regex in regexes:
                match = regex.search(text)
                if match:
                    return ClassificationResult(ok=False, violation_kind=kind, detail=match.group(0))
        return ClassificationResult(ok=True)


class ContentSafetyGuardrail(Guardrail):
    """Rejects harmful content as judged by a ``ContentClassifier``."""

    def __init__(
        self,
        classifier: Optional[ContentClassifier] = None,
        name: str = "content_safety",
        applies_to: str = "both",
    ) -> None:
        super().__init__(name=name, applies_to=applies_to)
        self.classifier = classifier or RegexContentClassifier()

    def _check(self, data: Any) -> None:
        result = self.classifier.classify(data_to_text(data))
        if not result.ok:
            raise SecurityError(
                f"Content flagged as {result.violation_kind or 'unsafe'}",
                violation_kind=result.violation_kind,
                context={"matched": result.detail} if result.detail else None,
            )

    def validate_input(self, data: Any) -> None:
        self._check(data)

    def validate_output(self, data: Any) -> None:
        self._check(data)


# =============================================================================
# PII
# =============================================================================

PII_PATTERNS: Dict[str, str] = {
    "ssn": r"\b\d{3}-\d{2}-\d{4}\b",
    "credit_card": r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b",
    "email": r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
    "phone": r"(?<!\d)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b",
}


class PIIGuardrail(Guardrail):
    """
    Rejects data containing personally identifiable information.

    Args:
        patterns: Mapping of PII type -> regex (defaults to ``PII_PATTERNS``)
    """

    default_scope = "input"

    def __init__(
        self,
        patterns: Optional[Dict[str, str]] = None,
        name: str = "pii",
        applies_to: str = None,
    ) -> None:
        super().__init__(name=name, applies_to=applies_to)
        self.patterns = {
            kind: re.compile(p) for kind, p in (patterns if patterns is not None else PII_PATTERNS).items()
        }

    def detect(self, data: Any) -> List[str]:
        text = data_to_text(data)
        return [kind for kind, regex in self.patterns.items() if regex.search(text)]

    def _check(self, data: Any) -> None:
        detected = self.detect(data)
        if detected:
            raise SecurityError(
                f"PII detected: {', '.join(detected)}",
                violation_kind="pii",
                context={"detected_pii_types": detected},
            )

    def validate_input(self, data: Any) -> None:
        self._check(data)

    def validate_output(self, data: Any) -> None:
        self._check(data)


# =============================================================================
# LENGTH
# =============================================================================

class LengthGuardrail(Guardrail):
    """Bounds the character length of the serialized data."""

    def __init__(
        self,
        max_length: Optional[int] = None,
        min_length: Optional[int] = None,
        name: str = "length",
        applies_to: str = "both",
    ) -> None:
        super().__init__(name=name, applies_to=applies_to)
        if max_length is None and min_length is None:
            raise AgentConfigurationError(
                "LengthGuardrail requires max_length or min_length", config_field="max_length"
            )
        if max_length is not None and min_length is not None and min_length > max_length:
            raise AgentConfigurationError(
                f"min_length ({min_length}) is greater than max_length ({max_length})",
                config_field="min_length",
                config_value=min_length,
            )
        self.max_length = max_length
        self.min_length = min_length

    def _check(self, data: Any) -> None:
        length = len(data_to_text(data))
        if self.max_length is not None and length > self.max_length:
            raise ValidationError(
                f"Length {length} exceeds maximum of {self.max_length} characters",
                context={"length": length, "max_length": self.max_length},
            )
        if self.min_length is not None and length < self.min_length:
            raise ValidationError(
                f"Length {length} is below minimum of {self.min_length} characters",
                context={"length": length, "min_length": self.min_length},
            )

    def validate_input(self, data: Any) -> None:
        self._check(data)

    def validate_output(self, data: Any) -> None:
        self._check(data)


# =============================================================================
# JSON SCHEMA
# =============================================================================

class JSONSchemaGuardrail(Guardrail):
    """
    Structural validation against a JSON schema.

    String data is parsed as JSON before validation. The schema may also be
    given in the short forms accepted by ``compile_schema``.
    """

    def __init__(self, schema: Any, name: str = "json_schema", applies_to: str = "both") -> None:
        super().__init__(name=name, applies_to=applies_to)
        self.schema = compile_schema(schema)
        if self.schema is None:
            raise AgentConfigurationError("JSONSchemaGuardrail requires a schema", config_field="schema")
        try:
            jsonschema.validators.validator_for(self.schema).check_schema(self.schema)
        except jsonschema.exceptions.SchemaError as e:
            raise AgentConfigurationError(
                f"Invalid JSON schema: {e.message}", config_field="schema"
            ) from e

    def _check(self, data: Any) -> None:
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Data is not valid JSON: {e.msg}") from e
        ok, error_msg, error_path = validate_data(data, self.schema)
        if not ok:
            raise ValidationError(error_msg, path=error_path)

    def validate_input(self, data: Any) -> None:
        self._check(data)

    def validate_output(self, data: Any) -> None:
        self._check(data)


# =============================================================================
# RATE LIMIT
# =============================================================================

class RateLimitGuardrail(Guardrail):
    """
    Rolling-window request ceiling.

    Each accepted ``validate_input`` call counts as one request; output is
    never counted. Rejected calls are not counted either.

    Args:
        max_requests: Requests allowed per window
        window_seconds: Window length (default 60 seconds)
        clock: Monotonic time source
    """

    default_scope = "input"

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        name: str = "rate_limit",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(name=name, applies_to="input")
        if max_requests < 1:
            raise AgentConfigurationError(
                "max_requests must be >= 1", config_field="max_requests", config_value=max_requests
            )
        if window_seconds <= 0:
            raise AgentConfigurationError(
                "window_seconds must be > 0", config_field="window_seconds", config_value=window_seconds
            )
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Deque[float] = deque()
        self._lock = threading.Lock()

    def validate_input(self, data: Any) -> None:
        with self._lock:
            now = self._clock()
            while self._requests and self._requests[0] <= now - self.window_seconds:
                self._requests.popleft()
            if len(self._requests) >= self.max_requests:
                retry_after = self._requests[0] + self.window_seconds - now
                raise RateLimitError(
                    f"Rate limit of {self.max_requests} requests per "
                    f"{self.window_seconds:g}s exceeded",
                    limit=self.max_requests,
                    window_seconds=self.window_seconds,
                    retry_after=max(0.0, retry_after),
                )
            self._requests.append(now)

    @property
    def current_count(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for t in self._requests if t > now - self.window_seconds)

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
