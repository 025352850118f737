"""Cooperative cancellation for turns."""

import asyncio


class TurnCancelled(Exception):
    """Raised at a checkpoint once the turn's token is cancelled."""


class CancellationToken:
    """Flag shared between a turn and whoever may abort it.

    The engine checks the token between stages and before each commit.
    Registered tasks are cancelled together with the token.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for task in list(self._tasks):
            task.cancel()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled(self.reason or "cancelled")

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Cancel ``task`` when the token is cancelled."""
        if self._event.is_set():
            task.cancel()
            return task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait(self) -> None:
        await self._event.wait()
