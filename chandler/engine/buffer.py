"""Word-boundary text buffering for streamed responses."""

BOUNDARY_CHARS = frozenset(" \t\n.,!?;:")


class TextBuffer:
    """Accumulates text fragments and releases them at word boundaries.

    ``push`` returns the longest prefix ending in whitespace or
    punctuation, so a client never sees half a word. ``flush`` returns
    whatever remains.
    """

    def __init__(self) -> None:
        self._pending = ""

    def push(self, fragment: str) -> str:
        self._pending += fragment
        cut = -1
        for index in range(len(self._pending) - 1, -1, -1):
            if self._pending[index] in BOUNDARY_CHARS:
                cut = index
                break
        if cut < 0:
            return ""
        ready, self._pending = self._pending[: cut + 1], self._pending[cut + 1 :]
        return ready

    def flush(self) -> str:
        ready, self._pending = self._pending, ""
        return ready

    @property
    def pending(self) -> str:
        return self._pending
