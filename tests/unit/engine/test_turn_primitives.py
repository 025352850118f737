"""Unit tests for the turn state machine, text buffer, cancellation and locks."""

import asyncio

import pytest

from chandler.engine.buffer import TextBuffer
from chandler.engine.cancellation import CancellationToken, TurnCancelled
from chandler.engine.locks import ThreadLockRegistry
from chandler.engine.machine import TurnState, TurnStateMachine
from chandler.errors import EngineError


class TestTurnStateMachine:
    """Tests for TurnStateMachine."""

    def test_full_pipeline(self) -> None:
        """A successful turn walks every stage in order."""
        ticks = iter(range(100))
        machine = TurnStateMachine("t", clock=lambda: next(ticks) / 1000)
        for state in [
            TurnState.INTENT_DETECTED,
            TurnState.CONTEXT_ENRICHED,
            TurnState.INPUT_VALIDATED,
            TurnState.ACTIONS_SELECTED,
            TurnState.ACTIONS_EXECUTED,
            TurnState.OUTPUT_VALIDATED,
            TurnState.RESPONSE_FORMATTED,
            TurnState.EMITTED,
            TurnState.COMPLETED,
        ]:
            machine.transition(state)

        assert machine.is_terminal
        assert machine.history[0] == TurnState.RECEIVED
        assert machine.timings["received"] == 1.0
        assert "emitted" in machine.timings

    def test_illegal_transition_raises(self) -> None:
        """Skipping stages is rejected."""
        machine = TurnStateMachine("t")
        with pytest.raises(EngineError, match="RECEIVED -> COMPLETED"):
            machine.transition(TurnState.COMPLETED)

    def test_rate_limited_only_from_received(self) -> None:
        """RATE_LIMITED is reachable only before any work is done."""
        machine = TurnStateMachine("t")
        assert machine.can_transition(TurnState.RATE_LIMITED)
        machine.transition(TurnState.INTENT_DETECTED)
        assert not machine.can_transition(TurnState.RATE_LIMITED)

    def test_unauthorized_after_selection(self) -> None:
        """UNAUTHORIZED follows action selection."""
        machine = TurnStateMachine("t")
        for state in [
            TurnState.INTENT_DETECTED,
            TurnState.CONTEXT_ENRICHED,
            TurnState.INPUT_VALIDATED,
            TurnState.ACTIONS_SELECTED,
        ]:
            machine.transition(state)
        machine.transition(TurnState.UNAUTHORIZED)
        assert machine.state == TurnState.UNAUTHORIZED

    def test_terminal_states_are_final(self) -> None:
        """fail() on a terminal state is a no-op and nothing leaves it."""
        machine = TurnStateMachine("t")
        machine.fail()
        machine.fail()
        assert machine.history == [TurnState.RECEIVED, TurnState.ERROR]
        with pytest.raises(EngineError):
            machine.transition(TurnState.INTENT_DETECTED)


class TestTextBuffer:
    """Tests for TextBuffer."""

    def test_releases_at_word_boundaries(self) -> None:
        """Partial words are held back until a boundary arrives."""
        buffer = TextBuffer()
        assert buffer.push("hel") == ""
        assert buffer.push("lo wor") == "hello "
        assert buffer.pending == "wor"
        assert buffer.push("ld.") == "world."
        assert buffer.flush() == ""

    def test_flush_returns_remainder(self) -> None:
        """flush drains whatever is pending."""
        buffer = TextBuffer()
        buffer.push("Total: $12")
        assert buffer.flush() == "$12"
        assert buffer.pending == ""


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_raise_if_cancelled(self) -> None:
        """Checkpoints raise only after cancellation."""
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("client_disconnected")

        with pytest.raises(TurnCancelled, match="client_disconnected"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_cancels_tracked_tasks(self) -> None:
        """Tracked tasks are cancelled with the token."""
        token = CancellationToken()
        task = token.track(asyncio.create_task(asyncio.sleep(10)))

        token.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_track_after_cancel(self) -> None:
        """Tasks tracked after cancellation are cancelled immediately."""
        token = CancellationToken()
        token.cancel()
        task = token.track(asyncio.create_task(asyncio.sleep(10)))
        with pytest.raises(asyncio.CancelledError):
            await task


class TestThreadLockRegistry:
    """Tests for per-thread serialization."""

    @pytest.mark.asyncio
    async def test_same_thread_is_serialized(self) -> None:
        """Turns on one thread never overlap."""
        locks = ThreadLockRegistry()
        events: list[str] = []

        async def turn(name: str) -> None:
            async with locks.hold("t-1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(turn("a"), turn("b"))

        assert events == ["a-start", "a-end", "b-start", "b-end"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_threads_run_concurrently(self) -> None:
        """Locks for different threads are independent."""
        locks = ThreadLockRegistry()
        async with locks.hold("t-1"):
            assert locks.is_locked("t-1")
            async with locks.hold("t-2"):
                assert locks.is_locked("t-2")
        assert not locks.is_locked("t-1")
