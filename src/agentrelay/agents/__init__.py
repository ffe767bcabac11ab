"""
Agent definitions, conversation memory, context windows and tool contexts.
"""

from .agents import Agent, Enabled, EnabledKind, FunctionTool
from .context_window import (
    ContextWindowManager,
    ContextWindowPolicy,
    MessageCountWindow,
    SummarizationWindow,
    TokenSlidingWindow,
    WindowStrategy,
)
from .exceptions import (
    AgentConfigurationError,
    AgentFrameworkError,
    GuardrailError,
    ModelAPIError,
    RateLimitError,
    SecurityError,
    ToolExecutionError,
    ToolNotFoundError,
    TurnLimitExceeded,
    ValidationError,
)
from .memory import Conversation, Message, ToolCallRequest, normalize_input
from .tool_context import ContextManager, ExecutionRecord, ToolContext
from .utils import init_agent_logging

__all__ = [
    # Agents and tools
    "Agent",
    "FunctionTool",
    "Enabled",
    "EnabledKind",
    # Memory
    "Message",
    "ToolCallRequest",
    "Conversation",
    "normalize_input",
    # Context window
    "ContextWindowManager",
    "ContextWindowPolicy",
    "WindowStrategy",
    "TokenSlidingWindow",
    "MessageCountWindow",
    "SummarizationWindow",
    # Tool context
    "ToolContext",
    "ContextManager",
    "ExecutionRecord",
    # Exceptions
    "AgentFrameworkError",
    "GuardrailError",
    "ValidationError",
    "SecurityError",
    "RateLimitError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "TurnLimitExceeded",
    "AgentConfigurationError",
    "ModelAPIError",
    # Logging
    "init_agent_logging",
]
