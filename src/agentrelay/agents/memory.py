"""
Conversation value objects.

Messages and tool-call requests as exchanged with an OpenAI-compatible
chat-completions backend, plus the append-only ``Conversation`` owned by a
run.
"""

import dataclasses
import json
import logging
import uuid
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

VALID_ROLES = ("system", "user", "assistant", "tool")


@dataclasses.dataclass
class ToolCallRequest:
    """
    A tool invocation requested by the model.

    ``arguments`` holds the raw argument text exactly as streamed; it is only
    parsed on demand so partially streamed payloads never fail early.
    """

    id: str
    name: str
    arguments: str = ""
    index: int = 0

    def parsed_arguments(self) -> Dict[str, Any]:
        """
        Parse the accumulated argument text.

        Returns:
            The arguments as a dict (empty text yields ``{}``)

        Raises:
            ValidationError: If the text is not a JSON object
        """
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            parsed = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Arguments for tool '{self.name}' are not valid JSON: {e.msg}",
                direction="input",
                context={"tool_name": self.name, "arguments": self.arguments[:200]},
            ) from e
        if not isinstance(parsed, dict):
            raise ValidationError(
                f"Arguments for tool '{self.name}' must be a JSON object, "
                f"got {type(parsed).__name__}",
                direction="input",
                context={"tool_name": self.name},
            )
        return parsed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format compatible with the OpenAI API."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "ToolCallRequest":
        """Create from dictionary format (OpenAI API format)."""
        function_data = data.get("function") or {}
        return cls(
            id=data.get("id") or "",
            name=function_data.get("name") or "",
            arguments=function_data.get("arguments") or "",
            index=data.get("index", index),
        )


@dataclasses.dataclass
class Message:
    """A single conversation message."""

    role: str
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    message_id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"role must be one of {VALID_ROLES}, got: {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str] = None, tool_calls: Optional[List[ToolCallRequest]] = None
    ) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str, name: Optional[str] = None) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)

    def to_llm_dict(self) -> Dict[str, Any]:
        """
        Convert to the dict shape sent in the ``messages`` request field.

        Local bookkeeping (``message_id``) is never sent.
        """
        result: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.role == "tool":
            result["tool_call_id"] = self.tool_call_id
            if self.name:
                result["name"] = self.name
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create a Message from an API-shaped dict."""
        tool_calls = data.get("tool_calls")
        return cls(
            role=data.get("role", "user"),
            content=data.get("content"),
            tool_calls=(
                [ToolCallRequest.from_dict(tc, index=i) for i, tc in enumerate(tool_calls)]
                if tool_calls else None
            ),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


class Conversation:
    """
    Append-only message history for one run.

    Trimming for the context window never mutates a Conversation; it produces
    a separate list of messages.
    """

    def __init__(self, messages: Optional[Iterable[Message]] = None) -> None:
        self._messages: List[Message] = list(messages or [])

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    @property
    def messages(self) -> List[Message]:
        """A copy of the messages in order."""
        return list(self._messages)

    def last(self, role: Optional[str] = None) -> Optional[Message]:
        """Most recent message, optionally restricted to one role."""
        for message in reversed(self._messages):
            if role is None or message.role == role:
                return message
        return None

    def has_system_message(self) -> bool:
        return any(m.role == "system" for m in self._messages)

    def to_llm_dicts(self) -> List[Dict[str, Any]]:
        return [m.to_llm_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, idx):
        return self._messages[idx]


def normalize_input(data: Union[str, Message, Dict[str, Any], Iterable[Any]]) -> List[Message]:
    """
    Turn run input into a list of Messages.

    Accepts a plain string (one user message), a Message, an API-shaped dict,
    or an iterable of either.
    """
    if isinstance(data, str):
        return [Message.user(data)]
    if isinstance(data, Message):
        return [data]
    if isinstance(data, dict):
        return [Message.from_dict(data)]
    try:
        items = list(data)
    except TypeError:
        raise TypeError(f"Invalid input type: {type(data).__name__}") from None
    messages = []
    for item in items:
        if isinstance(item, Message):
            messages.append(item)
        elif isinstance(item, dict):
            messages.append(Message.from_dict(item))
        else:
            raise TypeError(f"Invalid message type: {type(item).__name__}")
    return messages
