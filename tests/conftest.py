"""
Shared fixtures: SSE line builders and a scripted model adapter.

The scripted adapter replays canned SSE streams so the run loop can be
tested end to end without any network access.
"""

import json
from typing import Any, Dict, List, Optional

import pytest


class SSE:
    """Builders for chat-completions stream lines."""

    @staticmethod
    def line(chunk: Any) -> str:
        return f"data: {json.dumps(chunk)}"

    @staticmethod
    def delta(delta: Dict[str, Any], finish_reason: Optional[str] = None) -> str:
        return SSE.line({"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]})

    @staticmethod
    def content(text: str) -> str:
        return SSE.delta({"content": text})

    @staticmethod
    def tool_fragment(index: int, id: str = None, name: str = None, arguments: str = None) -> str:
        fragment: Dict[str, Any] = {"index": index}
        if id is not None:
            fragment["id"] = id
        function = {}
        if name is not None:
            function["name"] = name
        if arguments is not None:
            function["arguments"] = arguments
        if function:
            fragment["function"] = function
        return SSE.delta({"tool_calls": [fragment]})

    @staticmethod
    def finish(reason: str = "stop") -> str:
        return SSE.delta({}, finish_reason=reason)

    @staticmethod
    def text_response(*parts: str) -> List[str]:
        """A full text completion split into ``parts``."""
        return [SSE.content(p) for p in parts] + [SSE.finish("stop"), "data: [DONE]"]

    @staticmethod
    def tool_response(*calls) -> List[str]:
        """A full completion requesting ``(id, name, arguments_json)`` calls."""
        lines = []
        for index, (call_id, name, arguments) in enumerate(calls):
            lines.append(SSE.tool_fragment(index, id=call_id, name=name, arguments=""))
            lines.append(SSE.tool_fragment(index, arguments=arguments))
        lines.append(SSE.finish("tool_calls"))
        lines.append("data: [DONE]")
        return lines


class ScriptedAdapter:
    """
    Model adapter replaying scripted SSE streams, one per model call.

    Once the script is used up, ``default`` (when given) is replayed for
    every further call.
    """

    provider = "scripted"

    def __init__(self, responses: List[List[str]], default: Optional[List[str]] = None):
        self.responses = list(responses)
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def astream(self, messages, tools=None, model=None, max_tokens=None):
        self.calls.append(
            {"messages": messages, "tools": tools, "model": model, "max_tokens": max_tokens}
        )
        if self.responses:
            lines = self.responses.pop(0)
        elif self.default is not None:
            lines = self.default
        else:
            raise AssertionError("ScriptedAdapter ran out of responses")
        for line in lines:
            yield line

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def models_called(self) -> List[str]:
        return [c["model"] for c in self.calls]


@pytest.fixture
def sse():
    """SSE line builders."""
    return SSE


@pytest.fixture
def scripted_adapter():
    """Factory for ScriptedAdapter instances."""
    return ScriptedAdapter
