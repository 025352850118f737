"""Conversation state models."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from chandler.commerce.models import Cart
from chandler.security.models import SecurityContext

Mode = Literal["b2c", "b2b"]
Role = Literal["user", "assistant", "system"]


class Message(BaseModel):
    """One conversation message."""

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationState(BaseModel):
    """Per-thread conversation state.

    Only ``apply_commands`` produces new states; callers never mutate an
    instance in place.
    """

    thread_id: str
    mode: Mode = "b2c"
    cart: Cart = Field(default_factory=Cart)
    messages: list[Message] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    security: SecurityContext = Field(default_factory=SecurityContext)
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
