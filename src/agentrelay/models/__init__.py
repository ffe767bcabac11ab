"""Model configuration, streaming decoder and provider adapters."""

from .adapters import (
    AsyncChatCompletionsAdapter,
    AsyncOpenAIAdapter,
    ChatCompletionsAdapter,
    OpenAIAdapter,
    ProviderAdapterFactory,
)
from .config import PROVIDER_BASE_URLS, ModelConfig
from .streaming import DecodedResponse, StreamDecoder, StreamEvent

__all__ = [
    "ModelConfig",
    "PROVIDER_BASE_URLS",
    "StreamDecoder",
    "StreamEvent",
    "DecodedResponse",
    "ChatCompletionsAdapter",
    "AsyncChatCompletionsAdapter",
    "OpenAIAdapter",
    "AsyncOpenAIAdapter",
    "ProviderAdapterFactory",
]
