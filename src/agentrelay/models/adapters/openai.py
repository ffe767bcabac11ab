import logging
from typing import Any, Dict, List, Optional

from .base import AsyncChatCompletionsAdapter, ChatCompletionsAdapter

logger = logging.getLogger(__name__)


class OpenAIAdapter(ChatCompletionsAdapter):
    """Adapter for OpenAI and OpenAI-compatible APIs (OpenRouter, Groq)"""

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        self.provider = config.provider or "openai"

    @staticmethod
    def _normalize_model_name(model_name: str, provider: Optional[str]) -> str:
        # OpenRouter uses "openai/gpt-4o" but the OpenAI API needs "gpt-4o"
        if provider != "openrouter" and model_name.startswith("openai/"):
            return model_name[len("openai/"):]
        return model_name

    def get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        headers.update(self.config.extra_headers)
        return headers

    def get_endpoint_url(self) -> str:
        return self.config.completions_url

    def format_request_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._normalize_model_name(model or self.model_name, self.config.provider),
            "messages": messages,
            "stream": True,
            "max_tokens": max_tokens or self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        if tools:
            payload["tools"] = tools
        return payload


class AsyncOpenAIAdapter(AsyncChatCompletionsAdapter, OpenAIAdapter):
    pass
