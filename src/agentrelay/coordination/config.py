"""
Configuration classes for the run loop.
"""

from dataclasses import dataclass
from typing import Optional

from ..agents.context_window import ContextWindowPolicy
from ..agents.exceptions import AgentConfigurationError

TOOL_ERROR_POLICIES = ("feed_back", "raise")


@dataclass
class RunConfig:
    """
    Per-run behaviour of the RunLoop.

    Attributes:
        tool_error_policy: ``"feed_back"`` turns tool failures into tool-result
            messages the model can react to; ``"raise"`` aborts the run
        parallel_tool_calls: Run calls to different tools concurrently
        session_id: ToolContext session (``"default"`` when None)
        context_window: Trimming policy applied before every model call (when
            None, a token sliding window sized for the current agent's model)
        stream_timeout: Seconds allowed per streamed model call (None: no limit)
        max_handoffs: Handoffs allowed per run
        max_tokens: Completion limit sent to the model (adapter default when None)
    """

    tool_error_policy: str = "feed_back"
    parallel_tool_calls: bool = True
    session_id: Optional[str] = None
    context_window: Optional[ContextWindowPolicy] = None
    stream_timeout: Optional[float] = None
    max_handoffs: int = 10
    max_tokens: Optional[int] = None

    def __post_init__(self):
        if self.tool_error_policy not in TOOL_ERROR_POLICIES:
            raise AgentConfigurationError(
                f"tool_error_policy must be one of {TOOL_ERROR_POLICIES}",
                config_field="tool_error_policy",
                config_value=self.tool_error_policy,
            )
        if self.stream_timeout is not None and self.stream_timeout <= 0:
            raise AgentConfigurationError(
                "stream_timeout must be positive",
                config_field="stream_timeout",
                config_value=self.stream_timeout,
            )
        if self.max_handoffs < 0:
            raise AgentConfigurationError(
                "max_handoffs must be >= 0",
                config_field="max_handoffs",
                config_value=self.max_handoffs,
            )
        if self.max_tokens is not None and self.max_tokens < 1:
            raise AgentConfigurationError(
                "max_tokens must be >= 1",
                config_field="max_tokens",
                config_value=self.max_tokens,
            )
