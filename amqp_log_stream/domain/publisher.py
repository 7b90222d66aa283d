from __future__ import annotations

"""Domain-level abstraction for the broker's exchange publish handle.

The buffered publisher depends on this interface rather than on pika so that
the transport can be swapped (or faked in tests) without touching the
buffering rules.
"""

from abc import ABC, abstractmethod


class Publisher(ABC):
    """Handle to one declared exchange on a live channel."""

    @abstractmethod
    def publish(self, routing_key: str, payload: bytes) -> None:
        """Hand *payload* to the broker under *routing_key*.

        Implementations may raise when the underlying channel is already
        gone; they must not block waiting for the broker.
        """
