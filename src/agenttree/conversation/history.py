"""Back/forward navigation history for a session cursor."""

from __future__ import annotations

from collections import deque

DEFAULT_HISTORY_SIZE = 128


class NavigationHistory:
    """Bounded back and forward stacks of cursor positions.

    Works like browser history: visiting a new position clears the forward
    stack. The oldest entries fall off once ``maxlen`` is reached.
    """

    def __init__(self, maxlen: int = DEFAULT_HISTORY_SIZE) -> None:
        self._back: deque[str | None] = deque(maxlen=maxlen)
        self._forward: deque[str | None] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._back.maxlen or 0

    def record(self, previous: str | None) -> None:
        self._back.append(previous)
        self._forward.clear()

    def can_go_back(self) -> bool:
        return bool(self._back)

    def can_go_forward(self) -> bool:
        return bool(self._forward)

    def back(self, current: str | None) -> str | None:
        """Pop the previous position, remembering ``current`` for forward."""
        target = self._back.pop()
        self._forward.append(current)
        return target

    def forward(self, current: str | None) -> str | None:
        target = self._forward.pop()
        self._back.append(current)
        return target

    def clear(self) -> None:
        self._back.clear()
        self._forward.clear()

    def __len__(self) -> int:
        return len(self._back)
