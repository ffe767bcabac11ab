"""
Tool execution pipeline.
"""

from .tool_executor import (
    ToolCallOutcome,
    ToolExecutor,
    find_similar_tool_names,
    serialize_tool_result,
)

__all__ = [
    "ToolExecutor",
    "ToolCallOutcome",
    "find_similar_tool_names",
    "serialize_tool_result",
]
