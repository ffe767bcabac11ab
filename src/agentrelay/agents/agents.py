"""
Agent and tool definitions.

An ``Agent`` is an immutable bundle of identity, model, instructions, tools,
handoff targets and a turn budget. A ``FunctionTool`` pairs a callable with a
statically declared JSON-schema parameter descriptor, so dispatch never has
to inspect the callable's signature.
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from .exceptions import AgentConfigurationError

if TYPE_CHECKING:
    from .tool_context import ToolContext

logger = logging.getLogger(__name__)


class EnabledKind(Enum):
    ALWAYS = "always"
    NEVER = "never"
    PREDICATE = "predicate"


@dataclass(frozen=True)
class Enabled:
    """
    Whether a tool is offered to the model.

    A tagged variant: ``Enabled.always()``, ``Enabled.never()`` or
    ``Enabled.when(predicate)`` where ``predicate(context) -> bool`` (or a
    zero-argument predicate). A predicate that raises counts as disabled and is logged.
    """

    kind: EnabledKind
    predicate: Optional[Callable[..., bool]] = None
    takes_context: bool = True

    @classmethod
    def always(cls) -> "Enabled":
        return cls(EnabledKind.ALWAYS)

    @classmethod
    def never(cls) -> "Enabled":
        return cls(EnabledKind.NEVER)

    @classmethod
    def when(cls, predicate: Callable[[Optional["ToolContext"]], bool]) -> "Enabled":
        if not callable(predicate):
            raise AgentConfigurationError(
                "Enabled.when() requires a callable predicate",
                config_field="enabled",
                config_value=predicate,
            )
        try:
            takes_context = bool(inspect.signature(predicate).parameters)
        except (TypeError, ValueError):
            takes_context = True
        return cls(EnabledKind.PREDICATE, predicate, takes_context)

    @classmethod
    def coerce(cls, value: Any) -> "Enabled":
        """Accept an Enabled, a bool, None (always) or a predicate."""
        if isinstance(value, Enabled):
            return value
        if value is None or value is True:
            return cls.always()
        if value is False:
            return cls.never()
        if callable(value):
            return cls.when(value)
        raise AgentConfigurationError(
            f"Unsupported enabled value: {value!r}",
            config_field="enabled",
            config_value=value,
        )

    def evaluate(self, context: Optional["ToolContext"] = None) -> bool:
        if self.kind is EnabledKind.ALWAYS:
            return True
        if self.kind is EnabledKind.NEVER:
            return False
        try:
            if self.takes_context:
                return bool(self.predicate(context))
            return bool(self.predicate())
        except Exception as e:
            logger.warning(f"Enabled predicate raised {type(e).__name__}: {e}; treating as disabled")
            return False


@dataclass
class FunctionTool:
    """
    A callable exposed to the model as a function tool.

    Attributes:
        name: Tool name the model uses to call it
        function: Sync or async callable taking keyword arguments
        description: Human-readable description sent to the model
        parameters: JSON-schema object describing the keyword arguments
        exclusive: Serialize concurrent invocations of this tool name
        enabled: Whether the tool is offered (see ``Enabled``)
        wants_context: Pass the active ToolContext as ``context=``
    """

    name: str
    function: Callable[..., Any]
    description: str = ""
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    exclusive: bool = True
    enabled: Any = None
    wants_context: bool = False

    def __post_init__(self):
        if not self.name or not isinstance(self.name, str):
            raise AgentConfigurationError("Tool name must be a non-empty string", config_field="name")
        if not callable(self.function):
            raise AgentConfigurationError(
                f"Tool '{self.name}' function is not callable", config_field="function"
            )
        if self.parameters.get("type", "object") != "object":
            raise AgentConfigurationError(
                f"Tool '{self.name}' parameters must describe an object",
                config_field="parameters",
                config_value=self.parameters.get("type"),
            )
        self.enabled = Enabled.coerce(self.enabled)
        if not self.description:
            self.description = (self.function.__doc__ or "").strip().split("\n")[0]

    def is_enabled(self, context: Optional["ToolContext"] = None) -> bool:
        return self.enabled.evaluate(context)

    def to_openai_format(self) -> Dict[str, Any]:
        """Serialize as a ``tools`` entry of a chat-completions request."""
        parameters = {
            "type": "object",
            "properties": dict(self.parameters.get("properties", {})),
            "required": list(self.parameters.get("required", [])),
        }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class Agent:
    """
    An agent configuration driven by the run loop.

    Immutable after construction except for ``add_handoff``.
    """

    def __init__(
        self,
        name: str,
        model: str,
        instructions: Optional[str] = None,
        tools: Optional[Iterable[FunctionTool]] = None,
        handoffs: Optional[Iterable["Agent"]] = None,
        max_turns: int = 10,
    ) -> None:
        if not name:
            raise AgentConfigurationError("Agent name cannot be empty", config_field="name")
        if not model:
            raise AgentConfigurationError(
                "Agent model cannot be empty", agent_name=name, config_field="model"
            )
        if not isinstance(max_turns, int) or max_turns < 1:
            raise AgentConfigurationError(
                f"max_turns must be a positive integer, got {max_turns!r}",
                agent_name=name,
                config_field="max_turns",
                config_value=max_turns,
            )
        self._name = name
        self._model = model
        self._instructions = instructions
        self._max_turns = max_turns
        self._tools: Dict[str, FunctionTool] = {}
        for tool in tools or []:
            if tool.name in self._tools:
                raise AgentConfigurationError(
                    f"Duplicate tool name '{tool.name}'",
                    agent_name=name,
                    config_field="tools",
                    config_value=tool.name,
                )
            self._tools[tool.name] = tool
        self._handoffs: Dict[str, "Agent"] = {}
        for target in handoffs or []:
            self.add_handoff(target)

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str:
        return self._model

    @property
    def instructions(self) -> Optional[str]:
        return self._instructions

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @property
    def tools(self) -> List[FunctionTool]:
        return list(self._tools.values())

    @property
    def handoffs(self) -> List["Agent"]:
        return list(self._handoffs.values())

    def add_handoff(self, target: "Agent") -> None:
        """Declare ``target`` as a valid handoff destination."""
        if not isinstance(target, Agent):
            raise AgentConfigurationError(
                f"Handoff target must be an Agent, got {type(target).__name__}",
                agent_name=self._name,
                config_field="handoffs",
            )
        self._handoffs[target.name] = target
        logger.debug(
            f"Handoff {self._name} -> {target.name} registered",
            extra={"agent_name": self._name},
        )

    def get_tool(self, name: str) -> Optional[FunctionTool]:
        return self._tools.get(name)

    def resolve_handoff(self, name: str) -> Optional["Agent"]:
        return self._handoffs.get(name)

    def enabled_tools(self, context: Optional["ToolContext"] = None) -> List[FunctionTool]:
        return [t for t in self._tools.values() if t.is_enabled(context)]

    def tool_descriptors(self, context: Optional["ToolContext"] = None) -> List[Dict[str, Any]]:
        return [t.to_openai_format() for t in self.enabled_tools(context)]

    def __repr__(self) -> str:
        return (
            f"Agent(name={self._name!r}, model={self._model!r}, "
            f"tools={list(self._tools)}, handoffs={list(self._handoffs)}, "
            f"max_turns={self._max_turns})"
        )
