"""
Status event definitions for run observers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional
import time
import uuid


@dataclass
class StatusEvent:
    """Base class for all status events."""
    session_id: str  # Required field
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    timestamp: float = field(default_factory=time.time, kw_only=True)
    run_id: Optional[str] = field(default=None, kw_only=True)
    metadata: Dict[str, Any] = field(default_factory=dict, kw_only=True)

    @property
    def event_type(self) -> str:
        """Get event type for filtering."""
        return self.__class__.__name__.replace("Event", "").lower()


@dataclass
class RunStartEvent(StatusEvent):
    """Run accepted input and is about to call the model."""
    agent_name: str
    input_summary: Optional[str] = None


@dataclass
class TurnStartEvent(StatusEvent):
    """A model call is starting."""
    agent_name: str
    turn: int
    max_turns: int
    message_count: int = 0


@dataclass
class ToolCallEvent(StatusEvent):
    """Tool being called."""
    agent_name: str
    tool_name: str
    status: Literal["started", "completed", "failed"]
    duration: Optional[float] = None
    arguments: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class HandoffEvent(StatusEvent):
    """Control moved from one agent to another."""
    from_agent: str
    to_agent: str
    reason: Optional[str] = None


@dataclass
class RunCompleteEvent(StatusEvent):
    """Run finished, successfully or not."""
    agent_name: str
    success: bool
    duration: float
    total_turns: int
    error: Optional[str] = None
    error_code: Optional[str] = None
