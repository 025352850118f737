"""In-memory implementation of ConversationStore."""

from chandler.conversation.models import ConversationState
from chandler.conversation.store import ConversationStore


class InMemoryConversationStore(ConversationStore):
    """In-memory implementation of ConversationStore for testing and development.

    Uses simple dict storage. Not suitable for multi-instance deployments.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._states: dict[str, ConversationState] = {}

    async def get(self, thread_id: str) -> ConversationState | None:
        """Get the state of a thread."""
        return self._states.get(thread_id)

    async def save(self, state: ConversationState) -> str:
        """Save a state, returning its thread ID."""
        self._states[state.thread_id] = state
        return state.thread_id

    async def delete(self, thread_id: str) -> bool:
        """Delete a thread."""
        if thread_id in self._states:
            del self._states[thread_id]
            return True
        return False

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)
