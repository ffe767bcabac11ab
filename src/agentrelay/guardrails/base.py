"""
Guardrail interface.

A guardrail inspects the arguments passed to a tool (input) and the value a
tool returned (output). It accepts by returning normally and rejects by
raising a ``GuardrailError`` subclass.
"""

import json
import logging
from typing import Any

from ..agents.exceptions import AgentConfigurationError

logger = logging.getLogger(__name__)

SCOPES = ("input", "output", "both")


def data_to_text(data: Any) -> str:
    """Text form of guarded data: strings as-is, containers as compact JSON."""
    if isinstance(data, str):
        return data
    if isinstance(data, (dict, list, tuple)):
        return json.dumps(data, separators=(",", ":"), default=str, ensure_ascii=False)
    return str(data)


class Guardrail:
    """
    Base class for tool guardrails.

    The base implementation accepts everything. Subclasses override
    ``validate_input`` and/or ``validate_output``.

    Args:
        name: Name reported on rejections (defaults to the class name)
        applies_to: ``"input"``, ``"output"`` or ``"both"``
    """

    default_scope = "both"

    def __init__(self, name: str = None, applies_to: str = None) -> None:
        self.name = name or type(self).__name__
        self.applies_to = applies_to or self.default_scope
        if self.applies_to not in SCOPES:
            raise AgentConfigurationError(
                f"Guardrail scope must be one of {SCOPES}, got {self.applies_to!r}",
                config_field="applies_to",
                config_value=self.applies_to,
            )

    def checks_input(self) -> bool:
        return self.applies_to in ("input", "both")

    def checks_output(self) -> bool:
        return self.applies_to in ("output", "both")

    def validate_input(self, data: Any) -> None:
        return None

    def validate_output(self, data: Any) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, applies_to={self.applies_to!r})"
