import logging
from typing import Any, Iterable, Iterator, List, Optional

from ..agents.exceptions import GuardrailError
from .base import Guardrail

logger = logging.getLogger(__name__)


def _guardrail_name(guardrail: Any) -> str:
    return getattr(guardrail, "name", None) or type(guardrail).__name__


def _applies(guardrail: Any, direction: str) -> bool:
    scope = getattr(guardrail, "applies_to", "both")
    return scope == "both" or scope == direction


class GuardrailChain:
    """
    Ordered, fail-fast list of guardrails.

    Validators run in registration order; the first rejection stops the
    chain and propagates with ``direction`` and ``guardrail`` filled in.
    Any object with ``validate_input``/``validate_output`` methods can be
    registered, not only ``Guardrail`` subclasses.
    """

    def __init__(self, guardrails: Optional[Iterable[Any]] = None) -> None:
        self._guardrails: List[Any] = []
        for guardrail in guardrails or []:
            self.add(guardrail)

    def add(self, guardrail: Any) -> "GuardrailChain":
        if not (hasattr(guardrail, "validate_input") and hasattr(guardrail, "validate_output")):
            raise TypeError(
                f"{type(guardrail).__name__} does not implement validate_input/validate_output"
            )
        self._guardrails.append(guardrail)
        return self

    def remove(self, name: str) -> bool:
        """Remove every guardrail called ``name``; True if any was removed."""
        before = len(self._guardrails)
        self._guardrails = [g for g in self._guardrails if _guardrail_name(g) != name]
        return len(self._guardrails) != before

    def validate_input(self, data: Any) -> Any:
        """Run input validators; returns ``data`` unchanged when all accept."""
        return self._run("input", data)

    def validate_output(self, data: Any) -> Any:
        """Run output validators; returns ``data`` unchanged when all accept."""
        return self._run("output", data)

    def _run(self, direction: str, data: Any) -> Any:
        for guardrail in list(self._guardrails):
            if not _applies(guardrail, direction):
                continue
            check = guardrail.validate_input if direction == "input" else guardrail.validate_output
            try:
                check(data)
            except GuardrailError as e:
                e.stamp(direction, _guardrail_name(guardrail))
                logger.warning(f"Guardrail '{e.guardrail}' rejected {direction}: {e.developer_message}")
                raise
        return data

    def __len__(self) -> int:
        return len(self._guardrails)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._guardrails))

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"GuardrailChain({[_guardrail_name(g) for g in self._guardrails]})"
