"""Fixed-capacity circular buffer used to hold messages while the broker is away."""

from __future__ import annotations

from typing import Any, Iterator, List, Optional


class RingBuffer:
    """Circular array with head/size indices and an evict-oldest policy.

    Once ``capacity`` items are stored, every ``push`` overwrites the oldest
    slot, so the buffer always keeps the *newest* ``capacity`` items. Items
    come back out oldest-first through ``shift``.

    The buffer does no locking of its own; callers that share it between
    threads must guard it (the publisher does so with its state lock).
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError(f"Ring buffer capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._slots: List[Any] = [None] * capacity
        self._head = 0  # index of the oldest item
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def push(self, item: Any) -> Optional[Any]:
        """Append *item* at the tail.

        Returns the evicted oldest item when the buffer was full, ``None``
        otherwise.
        """
        tail = (self._head + self._size) % self._capacity
        if self._size == self._capacity:
            evicted = self._slots[self._head]
            self._slots[self._head] = item
            self._head = (self._head + 1) % self._capacity
            return evicted

        self._slots[tail] = item
        self._size += 1
        return None

    def shift(self) -> Any:
        """Remove and return the oldest item. Raises ``IndexError`` when empty."""
        if self._size == 0:
            raise IndexError("shift from empty ring buffer")
        item = self._slots[self._head]
        self._slots[self._head] = None
        self._head = (self._head + 1) % self._capacity
        self._size -= 1
        return item

    def __iter__(self) -> Iterator[Any]:
        for offset in range(self._size):
            yield self._slots[(self._head + offset) % self._capacity]

    def __repr__(self) -> str:
        return f"RingBuffer(capacity={self._capacity}, size={self._size})"
