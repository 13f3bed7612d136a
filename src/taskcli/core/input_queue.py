"""Bounded queue of user input that arrived while a goal was running.

The engine drains it only between cycles, never mid-action.
"""

from __future__ import annotations

import logging
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 5


class InputQueue:
    """FIFO of pending user lines with a fixed capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._items: deque[str] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self._capacity

    def put(self, text: str) -> bool:
        """Queue a line. Returns False for blank lines or when full."""
        text = text.strip()
        if not text:
            return False
        if self.is_full:
            logger.info("input queue full (%d), rejecting: %s", self._capacity, text)
            return False
        self._items.append(text)
        return True

    def peek(self) -> list[str]:
        return list(self._items)

    def drain(self) -> list[str]:
        """Remove and return everything queued, oldest first."""
        items = list(self._items)
        self._items.clear()
        return items
