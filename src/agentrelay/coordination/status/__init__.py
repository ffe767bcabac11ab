"""
Status events emitted while a run progresses.
"""

from .events import (
    StatusEvent,
    RunStartEvent,
    TurnStartEvent,
    ToolCallEvent,
    HandoffEvent,
    RunCompleteEvent,
)

__all__ = [
    'StatusEvent',
    'RunStartEvent',
    'TurnStartEvent',
    'ToolCallEvent',
    'HandoffEvent',
    'RunCompleteEvent',
]
