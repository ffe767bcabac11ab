"""
Coordination: the run loop, tool execution and status events.
"""

from .config import RunConfig, TOOL_ERROR_POLICIES
from .event_bus import EventBus
from .execution import ToolCallOutcome, ToolExecutor
from .run_loop import Handoff, RunLoop, RunResult, RunState, parse_handoff
from .status import (
    HandoffEvent,
    RunCompleteEvent,
    RunStartEvent,
    StatusEvent,
    ToolCallEvent,
    TurnStartEvent,
)

__all__ = [
    # Run loop
    'RunLoop',
    'RunResult',
    'RunState',
    'Handoff',
    'parse_handoff',
    'RunConfig',
    'TOOL_ERROR_POLICIES',
    # Tool execution
    'ToolExecutor',
    'ToolCallOutcome',
    # Events
    'EventBus',
    'StatusEvent',
    'RunStartEvent',
    'TurnStartEvent',
    'ToolCallEvent',
    'HandoffEvent',
    'RunCompleteEvent',
]
