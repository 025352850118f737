"""ConversationStore implementations."""

from chandler.conversation.stores.inmemory import InMemoryConversationStore

__all__ = ["InMemoryConversationStore"]
