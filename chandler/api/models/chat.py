"""Chat request and response models."""

from pydantic import BaseModel, ConfigDict, Field

from chandler.commerce.models import Cart
from chandler.conversation.models import Mode
from chandler.engine.chunks import ErrorChunk


class ChatContext(BaseModel):
    """Optional storefront context sent with a message."""

    cart_id: str | None = None
    customer_id: str | None = None
    locale: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class ChatRequest(BaseModel):
    """Request body for POST /v1/chat and POST /v1/chat/stream."""

    message: str = Field(min_length=1, max_length=1000)
    """The customer's message text."""

    thread_id: str | None = Field(default=None, min_length=1, max_length=128)
    """Existing conversation thread. A new one is started if omitted."""

    mode: Mode | None = None
    """Pin the shopping mode. Detected from the message when omitted."""

    context: ChatContext = Field(default_factory=ChatContext)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Add 2 SKU-HEADPHONES to my cart",
                "thread_id": "thread_abc123",
                "context": {"locale": "en-US", "currency": "USD"},
            }
        }
    )


class ChatResponse(BaseModel):
    """Response body for POST /v1/chat."""

    thread_id: str

    mode: str

    message: str
    """The assistant's reply, or the user-safe error text."""

    final_state: str
    """Terminal turn state: COMPLETED, ERROR, RATE_LIMITED or UNAUTHORIZED."""

    intent: str | None = None

    tools_used: list[str] = Field(default_factory=list)

    errors: list[ErrorChunk] = Field(default_factory=list)

    cart: Cart | None = None

    stage_timings: dict[str, float] = Field(default_factory=dict)
