"""Commerce data client configuration models."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr

CommerceBackend = Literal["memory", "http"]


class CommerceConfig(BaseModel):
    """Commerce backend settings."""

    backend: CommerceBackend = Field(default="memory", description="Commerce client backend")
    base_url: str = Field(default="http://localhost:8181", description="Commerce API base URL")
    api_key: SecretStr | None = Field(default=None, description="API key (prefer env var)")
    timeout: float = Field(default=10.0, gt=0, description="Request timeout in seconds")
    currency: str = Field(default="USD", description="Default currency")
    tax_rate: float = Field(default=0.08, ge=0, description="Tax rate for the in-memory backend")
