"""
agentrelay - a runtime for tool-using LLM agents.

Drives an agent through streamed model turns, executes the tools it
requests behind guardrails, keeps the conversation inside the model's
context window and follows handoffs between cooperating agents.
"""

__version__ = "0.1.0"

# Agents and conversation state
from .agents import (
    Agent,
    ContextManager,
    ContextWindowManager,
    ContextWindowPolicy,
    Conversation,
    Enabled,
    FunctionTool,
    Message,
    ToolContext,
)

# Model configuration and streaming
from .models import ModelConfig, ProviderAdapterFactory, StreamDecoder

# Guardrails
from .guardrails import GuardrailChain

# Run loop
from .coordination import EventBus, RunConfig, RunLoop, RunResult, RunState

__all__ = [
    "Agent",
    "FunctionTool",
    "Enabled",
    "Message",
    "Conversation",
    "ContextWindowManager",
    "ContextWindowPolicy",
    "ToolContext",
    "ContextManager",
    "ModelConfig",
    "ProviderAdapterFactory",
    "StreamDecoder",
    "GuardrailChain",
    "EventBus",
    "RunConfig",
    "RunLoop",
    "RunResult",
    "RunState",
    "__version__",
]
