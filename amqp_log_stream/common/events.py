from __future__ import annotations

"""Lifecycle notifications emitted to observers of the log stream."""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class StreamEvent(Enum):
    CONNECT = "connect"
    CLOSE = "close"
    ERROR = "error"


Observer = Callable[..., Any]


class EventNotifier:
    """Registry of observers keyed by :class:`StreamEvent`.

    The set of event kinds is closed: subscribing with anything that is not a
    ``StreamEvent`` member is rejected up front.
    """

    def __init__(self) -> None:
        self._observers: Dict[StreamEvent, List[Observer]] = {event: [] for event in StreamEvent}
        self._lock = threading.Lock()

    def subscribe(self, event: StreamEvent, callback: Observer) -> None:
        if not isinstance(event, StreamEvent):
            raise TypeError(f"Unknown stream event: {event!r}")
        with self._lock:
            self._observers[event].append(callback)

    def unsubscribe(self, event: StreamEvent, callback: Observer) -> None:
        with self._lock:
            try:
                self._observers[event].remove(callback)
            except ValueError:
                logger.debug(f"Observer {callback!r} was not subscribed to {event.value}")

    def emit(self, event: StreamEvent, *args: Any) -> None:
        """Call every observer of *event*; a failing observer does not stop the rest."""
        with self._lock:
            observers = list(self._observers[event])

        for callback in observers:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Observer for '{event.value}' failed: {e}", exc_info=True)
