"""ConversationStore abstract interface."""

from abc import ABC, abstractmethod

from chandler.conversation.models import ConversationState, Mode


class ConversationStore(ABC):
    """Abstract interface for per-thread conversation state."""

    @abstractmethod
    async def get(self, thread_id: str) -> ConversationState | None:
        """Get the state of a thread."""
        pass

    @abstractmethod
    async def save(self, state: ConversationState) -> str:
        """Save a state, returning its thread ID."""
        pass

    @abstractmethod
    async def delete(self, thread_id: str) -> bool:
        """Delete a thread."""
        pass

    async def get_or_create(self, thread_id: str, mode: Mode = "b2c") -> ConversationState:
        """Get a thread's state, creating an empty one if it does not exist."""
        state = await self.get(thread_id)
        if state is None:
            state = ConversationState(thread_id=thread_id, mode=mode)
            await self.save(state)
        return state
