"""Queue of pending DNS requests waiting for an answer."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

QUEUE_TIMEOUT = 5


@dataclass
class QueueItem:
    ident: int
    timeout: float
    name: bytes | None = None
    peer: Any = None


class RequestQueue:
    """First-in first-out queue of request ids with per-item deadlines."""

    def __init__(self, timeout: float = QUEUE_TIMEOUT,
                 clock: Callable[[], float] = time.time) -> None:
        self.timeout = timeout
        self._clock = clock
        self._items: list[QueueItem] = []

    def find(self, ident: int) -> QueueItem | None:
        ident &= 0xFFFF
        return next((item for item in self._items if item.ident == ident), None)

    def add(self, ident: int, name=None, peer=None) -> None:
        """Queue a request unless one with the same id is already queued."""
        if self.find(ident) is not None:
            return
        self._items.append(
            QueueItem(ident & 0xFFFF, self._clock() + self.timeout, name, peer))

    def dequeue(self, ident: int = -1) -> QueueItem | None:
        """Remove the head (``ident`` < 0) or the item with ``ident``."""
        if not self._items:
            return None
        if ident < 0 or self._items[0].ident == ident:
            return self._items.pop(0)
        for position, item in enumerate(self._items):
            if item.ident == ident:
                return self._items.pop(position)
        return None

    def expire(self, callback: Callable[[QueueItem], Any] | None = None,
               now: float | None = None) -> list[QueueItem]:
        """Remove items from the head whose deadline has passed."""
        if now is None:
            now = self._clock()
        expired = []
        while self._items and self._items[0].timeout <= now:
            item = self._items.pop(0)
            if callback is not None:
                callback(item)
            expired.append(item)
        return expired

    def __len__(self) -> int:
        return len(self._items)