"""Provider adapter classes for streamed chat-completions backends."""

from .base import AsyncChatCompletionsAdapter, ChatCompletionsAdapter, iterate_in_thread
from .factory import ProviderAdapterFactory
from .openai import AsyncOpenAIAdapter, OpenAIAdapter

__all__ = [
    # Base
    "ChatCompletionsAdapter",
    "AsyncChatCompletionsAdapter",
    "iterate_in_thread",
    # OpenAI-compatible
    "OpenAIAdapter",
    "AsyncOpenAIAdapter",
    # Factory
    "ProviderAdapterFactory",
]
