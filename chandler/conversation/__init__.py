"""Conversation state, commands and storage."""

from chandler.conversation.commands import (
    AddMessage,
    Command,
    SetError,
    SetMode,
    UpdateCart,
    UpdateContext,
    UpdateSecurity,
    apply_command,
    apply_commands,
)
from chandler.conversation.models import ConversationState, Message, Mode, Role
from chandler.conversation.store import ConversationStore
from chandler.conversation.stores import InMemoryConversationStore

__all__ = [
    "AddMessage",
    "Command",
    "ConversationState",
    "ConversationStore",
    "InMemoryConversationStore",
    "Message",
    "Mode",
    "Role",
    "SetError",
    "SetMode",
    "UpdateCart",
    "UpdateContext",
    "UpdateSecurity",
    "apply_command",
    "apply_commands",
]
