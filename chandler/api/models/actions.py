"""Action catalog response models."""

from typing import Any

from pydantic import BaseModel, Field


class ActionSummary(BaseModel):
    id: str
    name: str
    description: str
    category: str
    mode: str
    requires_auth: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)


class ActionsResponse(BaseModel):
    """Response body for GET /v1/actions."""

    actions: list[ActionSummary]
    cache: dict[str, Any]
    metrics: list[dict[str, Any]]
