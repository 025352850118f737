"""Language model provider settings."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr


class LLMProviderConfig(BaseModel):
    """One OpenAI-compatible endpoint, or the offline mock.

    The mock is the default so a fresh checkout runs without credentials;
    intent detection and formatting then use their rule-based paths.
    """

    provider: Literal["openai", "mock"] = "mock"
    model: str = "gpt-4o-mini"
    api_key: SecretStr | None = Field(
        default=None, description="Set via CHANDLER_PROVIDERS__LLM__API_KEY"
    )
    base_url: str = "https://api.openai.com/v1"
    max_tokens: int = Field(default=1024, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds")


class ProvidersConfig(BaseModel):
    llm: LLMProviderConfig = Field(
        default_factory=LLMProviderConfig,
        description="Used for intent classification and response wording",
    )
