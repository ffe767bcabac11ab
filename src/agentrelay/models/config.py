import logging
import os
import warnings
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

# --- Model Configuration Schema ---

PROVIDER_BASE_URLS = {
    "openai": "https://api.openai.com/v1/",
    "openrouter": "https://openrouter.ai/api/v1",
    "groq": "https://api.groq.com/openai/v1",
}

PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ModelConfig(BaseModel):
    """
    Pydantic schema for an OpenAI-compatible chat-completions backend.

    Reads API keys from environment variables if not provided directly.
    """

    name: str = Field(..., description="Model identifier (e.g., 'gpt-4o')")
    provider: Optional[Literal["openai", "openrouter", "groq"]] = Field(
        None, description="API provider name (used to determine base_url if not set)"
    )
    base_url: Optional[str] = Field(
        None, description="Specific API endpoint URL (overrides provider)"
    )
    api_key: Optional[str] = Field(
        None, description="API authentication key (reads from env if None)"
    )
    max_tokens: int = Field(4096, gt=0, description="Maximum tokens per completion")
    temperature: float = Field(0.7, ge=0.0, le=2.0, description="Sampling temperature")
    timeout: float = Field(120.0, gt=0, description="HTTP timeout in seconds")
    extra_headers: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _set_base_url_from_provider(cls, data: Any) -> Any:
        """Sets base_url from PROVIDER_BASE_URLS if base_url is not explicitly provided."""
        if not isinstance(data, dict):
            return data

        if not data.get("base_url"):
            provider = data.get("provider")
            if not provider:
                raise ValueError("Either 'provider' or 'base_url' must be specified.")
            base_url = PROVIDER_BASE_URLS.get(provider)
            if base_url:
                data = {**data, "base_url": base_url}
        return data

    @model_validator(mode="after")
    def _validate_api_key(self) -> "ModelConfig":
        """Reads API key from environment if not provided."""
        if self.api_key is not None:
            return self

        env_var = PROVIDER_ENV_VARS.get(self.provider) if self.provider else None
        if env_var:
            env_api_key = os.getenv(env_var)
            if not env_api_key:
                raise ValueError(
                    f"API key for provider '{self.provider}' not found. "
                    f"Set the '{env_var}' environment variable or provide 'api_key' directly."
                )
            object.__setattr__(self, "api_key", env_api_key)
            logger.debug(f"Read API key for provider '{self.provider}' from env var '{env_var}'.")
        else:
            warnings.warn(
                f"No provider specified and no API key provided. "
                f"Ensure authentication is handled if required by the API at '{self.base_url}'."
            )
        return self

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"
