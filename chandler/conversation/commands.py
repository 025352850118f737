"""State-change commands and the reducer that applies them.

Actions and engine stages never touch ConversationState directly. They
emit commands, and ``apply_commands`` folds them into a new state in
emission order.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from functools import reduce
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from chandler.commerce.models import Cart
from chandler.conversation.models import ConversationState, Message, Mode, Role
from chandler.errors import ErrorKind
from chandler.security.models import SecurityContext


class AddMessage(BaseModel):
    """Append a message to the conversation."""

    type: Literal["add_message"] = "add_message"
    content: str
    role: Role = "assistant"
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateCart(BaseModel):
    """Merge cart fields into the current cart."""

    type: Literal["update_cart"] = "update_cart"
    cart: dict[str, Any]


class UpdateContext(BaseModel):
    """Merge values into the free-form conversation context."""

    type: Literal["update_context"] = "update_context"
    values: dict[str, Any]


class SetMode(BaseModel):
    """Switch the conversation between b2c and b2b."""

    type: Literal["set_mode"] = "set_mode"
    mode: Mode


class SetError(BaseModel):
    """Record the last user-facing error, or clear it with ``None``."""

    type: Literal["set_error"] = "set_error"
    message: str | None
    kind: ErrorKind | None = None


class UpdateSecurity(BaseModel):
    """Replace the conversation's security context."""

    type: Literal["update_security"] = "update_security"
    security: SecurityContext


Command = Annotated[
    AddMessage | UpdateCart | UpdateContext | SetMode | SetError | UpdateSecurity,
    Field(discriminator="type"),
]


def apply_command(state: ConversationState, command: Command) -> ConversationState:
    """Return a new state with a single command applied."""
    now = datetime.now(UTC)
    update: dict[str, Any] = {"updated_at": now}

    if isinstance(command, AddMessage):
        message = Message(role=command.role, content=command.content, metadata=command.metadata)
        update["messages"] = [*state.messages, message]
    elif isinstance(command, UpdateCart):
        update["cart"] = Cart.model_validate(
            {**state.cart.model_dump(), **command.cart, "last_updated": now}
        )
    elif isinstance(command, UpdateContext):
        update["context"] = {**state.context, **command.values}
    elif isinstance(command, SetMode):
        update["mode"] = command.mode
    elif isinstance(command, SetError):
        update["error"] = command.message
    elif isinstance(command, UpdateSecurity):
        update["security"] = command.security
    else:
        raise TypeError(f"Unknown command: {command!r}")

    return state.model_copy(update=update)


def apply_commands(state: ConversationState, commands: Iterable[Command]) -> ConversationState:
    """Apply commands left to right, returning the final state."""
    return reduce(apply_command, commands, state)
