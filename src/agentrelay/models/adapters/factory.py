"""Factory for creating chat-completions adapters."""

from ..config import ModelConfig
from .base import ChatCompletionsAdapter
from .openai import AsyncOpenAIAdapter, OpenAIAdapter


class ProviderAdapterFactory:
    """Factory to create the right adapter for a ModelConfig"""

    @staticmethod
    def create_adapter(config: ModelConfig, use_async: bool = True) -> ChatCompletionsAdapter:
        # openai, openrouter and groq all speak the OpenAI chat-completions protocol
        return AsyncOpenAIAdapter(config) if use_async else OpenAIAdapter(config)
