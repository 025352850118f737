"""LLM providers for intent classification and response generation.

Providers implement LLMProvider:
- mock -> MockLLMProvider, canned responses for tests and development
- openai -> OpenAICompatibleProvider, any chat completions endpoint
"""

from chandler.config.models.providers import LLMProviderConfig
from chandler.providers.llm.base import (
    AuthenticationError,
    ContentFilterError,
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ModelError,
    ProviderError,
    ProviderRateLimitError,
    TokenUsage,
)
from chandler.providers.llm.mock import MockLLMProvider
from chandler.providers.llm.openai import OpenAICompatibleProvider
from chandler.providers.llm.prompts import TemplateLoader


def create_llm_provider(config: LLMProviderConfig) -> LLMProvider:
    """Build the LLM provider selected by configuration."""
    if config.provider == "openai":
        return OpenAICompatibleProvider(
            config.api_key.get_secret_value() if config.api_key else None,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
        )
    return MockLLMProvider()


__all__ = [
    "AuthenticationError",
    "ContentFilterError",
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "MockLLMProvider",
    "ModelError",
    "OpenAICompatibleProvider",
    "ProviderError",
    "ProviderRateLimitError",
    "TemplateLoader",
    "TokenUsage",
    "create_llm_provider",
]
