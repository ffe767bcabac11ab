"""
Server-sent-event decoding for streamed chat completions.

The decoder turns ``data: {...}`` lines into content, tool-call and finish
events. Tool calls arrive as fragments keyed by ``index``; every non-null
fragment field is concatenated onto the accumulator for that index, so a
call's name, id and arguments can be split across any number of chunks.
Lines that are not valid JSON are skipped.
"""

import contextlib
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Union,
)

from ..agents.memory import Message, ToolCallRequest

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

Line = Union[str, bytes]


@dataclass
class StreamEvent:
    """
    One decoded event.

    ``type`` is ``"content"``, ``"tool_call"`` or ``"finish"``. ``content`` is
    always the running total; ``delta`` is the fragment that produced a
    content event.
    """

    type: str
    delta: Optional[str] = None
    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass
class DecodedResponse:
    """Accumulated result of one streamed completion."""

    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        return Message.assistant(content=self.content or None, tool_calls=self.tool_calls or None)


class StreamDecoder:
    """
    Incremental SSE decoder for chat-completions streams.

    Reusable: ``decode``/``adecode`` reset state on entry, ``feed_line`` can be
    driven manually for custom transports.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._content_parts: List[str] = []
        self._tool_calls: Dict[int, Dict[str, str]] = {}
        self._finish_reason: Optional[str] = None
        self.done = False

    @property
    def content(self) -> str:
        return "".join(self._content_parts)

    def tool_calls_snapshot(self) -> List[ToolCallRequest]:
        return [
            ToolCallRequest(id=acc["id"], name=acc["name"], arguments=acc["arguments"], index=idx)
            for idx, acc in sorted(self._tool_calls.items())
        ]

    def result(self) -> DecodedResponse:
        """
        The accumulated response.

        Calls whose stream never carried an ``id`` get ``call_<index>`` so the
        assistant message and its tool results can still be paired.
        """
        tool_calls = self.tool_calls_snapshot()
        for call in tool_calls:
            if not call.id:
                call.id = f"call_{call.index}"
        return DecodedResponse(
            content=self.content,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason,
        )

    # ---- line handling ----

    def feed_line(self, line: Line) -> List[StreamEvent]:
        """Process one SSE line and return the events it produced."""
        if self.done:
            return []
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.strip("\r\n")
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == DONE_SENTINEL:
            self.done = True
            return []

        try:
            chunk = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream line: {payload[:100]!r}")
            return []
        if not isinstance(chunk, dict):
            logger.debug(f"Skipping non-object stream chunk: {payload[:100]!r}")
            return []

        choices = chunk.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return []
        choice = choices[0]
        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            delta = {}

        events: List[StreamEvent] = []

        text = delta.get("content")
        if isinstance(text, str) and text:
            self._content_parts.append(text)
            events.append(StreamEvent(type="content", delta=text, content=self.content))

        for position, fragment in enumerate(delta.get("tool_calls") or []):
            if not isinstance(fragment, dict):
                continue
            self._accumulate_tool_call(fragment, position)
            events.append(
                StreamEvent(
                    type="tool_call",
                    content=self.content,
                    tool_calls=self.tool_calls_snapshot(),
                )
            )

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            self._finish_reason = finish_reason
            self.done = True
            events.append(
                StreamEvent(
                    type="finish",
                    content=self.content,
                    tool_calls=self.tool_calls_snapshot(),
                    finish_reason=finish_reason,
                )
            )
        return events

    def _accumulate_tool_call(self, fragment: Dict[str, Any], position: int) -> None:
        index = fragment.get("index")
        if not isinstance(index, int):
            index = position
        acc = self._tool_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if fragment.get("id") is not None:
            acc["id"] += str(fragment["id"])
        function = fragment.get("function") or {}
        if isinstance(function, dict):
            if function.get("name") is not None:
                acc["name"] += str(function["name"])
            if function.get("arguments") is not None:
                acc["arguments"] += str(function["arguments"])

    # ---- whole-stream helpers ----

    def iter_events(self, lines: Iterable[Line]) -> Iterator[StreamEvent]:
        """Yield events for ``lines``; a source with ``close()`` is closed when decoding stops."""
        self.reset()
        try:
            for line in lines:
                yield from self.feed_line(line)
                if self.done:
                    break
        finally:
            close = getattr(lines, "close", None)
            if close is not None:
                close()

    async def aiter_events(self, lines: AsyncIterable[Line]) -> AsyncIterator[StreamEvent]:
        """
        Async ``iter_events``. The line source is closed once decoding stops,
        including when the stream ends early at a finish reason or ``[DONE]``.
        """
        self.reset()
        try:
            async for line in lines:
                for event in self.feed_line(line):
                    yield event
                if self.done:
                    break
        finally:
            aclose = getattr(lines, "aclose", None)
            if aclose is not None:
                await aclose()

    def decode(
        self, lines: Iterable[Line], on_event: Optional[Callable[[StreamEvent], Any]] = None
    ) -> DecodedResponse:
        """Decode a whole stream, calling ``on_event`` for each event."""
        with contextlib.closing(self.iter_events(lines)) as events:
            for event in events:
                if on_event is not None:
                    on_event(event)
        return self.result()

    async def adecode(
        self, lines: AsyncIterable[Line], on_event: Optional[Callable[[StreamEvent], Any]] = None
    ) -> DecodedResponse:
        """Async ``decode``; ``on_event`` may be a plain function or a coroutine function."""
        events = self.aiter_events(lines)
        async with contextlib.aclosing(events):
            async for event in events:
                if on_event is not None:
                    outcome = on_event(event)
                    if inspect.isawaitable(outcome):
                        await outcome
        return self.result()
