from __future__ import annotations

"""Connection-state aware publisher with a bounded retry buffer.

While the broker is reachable, messages go straight to the exchange. While
it is not, they are parked in a ring buffer of fixed capacity; once that
buffer is full the oldest message is evicted for every new one, so the
newest ``buffer_size`` messages survive an outage of any length. On every
transition back to connected the buffer is drained oldest-first before any
later message is published.

Messages already handed to the exchange when the connection drops are not
replayed: a failed publish is only noticed through the transport's
close/error callbacks, and whatever was in flight at that point is lost.
"""

import logging
from typing import Any, List, Optional, Tuple

from ..common.events import EventNotifier, Observer, StreamEvent
from ..common.ring_buffer import RingBuffer
from ..logic.message_transformer import OutboundMessage
from ..state.connection_state import ConnectionState, ConnectionStateHolder
from .publisher import Publisher
from .transport_listener import TransportListener

logger = logging.getLogger(__name__)


class BufferedPublisher(TransportListener):
    """Single authority on whether it is safe to publish right now.

    All state and buffer mutations happen under the state holder's lock, so
    the decision "publish or buffer" is atomic with the buffer operation
    that follows it, and a ``ready`` drain cannot interleave with a
    concurrent ``send``.
    """

    def __init__(self, buffer_size: int = 100, notifier: Optional[EventNotifier] = None) -> None:
        self._connection = ConnectionStateHolder()
        self._buffer = RingBuffer(buffer_size)
        self._exchange: Optional[Publisher] = None
        self._notifier = notifier if notifier is not None else EventNotifier()
        self._evicted = 0
        self._published = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def pending(self) -> int:
        with self._connection.lock:
            return len(self._buffer)

    @property
    def evicted(self) -> int:
        """How many buffered messages were overwritten because the buffer was full."""
        return self._evicted

    @property
    def published(self) -> int:
        return self._published

    def pending_messages(self) -> List[OutboundMessage]:
        with self._connection.lock:
            return list(self._buffer)

    def subscribe(self, event: StreamEvent, callback: Observer) -> None:
        self._notifier.subscribe(event, callback)

    def unsubscribe(self, event: StreamEvent, callback: Observer) -> None:
        self._notifier.unsubscribe(event, callback)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    # Nothing below logs or notifies observers while holding the state lock:
    # a logging handler that feeds this publisher would otherwise take its
    # own lock and ours in the opposite order.

    def send(self, routing_key: str, payload: bytes) -> None:
        """Publish now when connected, otherwise keep the message for later.

        A non-empty buffer while connected means a drain is pending or
        running, so the message queues up behind the older ones instead of
        overtaking them.
        """
        message = OutboundMessage(routing_key, payload)
        with self._connection.lock:
            if self._connection.is_connected and self._buffer.is_empty():
                error, evicted = self._route_locked(message)
            else:
                error, evicted = None, self._buffer_locked(message)
        self._report(message, error, evicted)

    def publish_or_buffer(self, routing_key: str, payload: bytes) -> None:
        message = OutboundMessage(routing_key, payload)
        with self._connection.lock:
            error, evicted = self._route_locked(message)
        self._report(message, error, evicted)

    def flush(self) -> None:
        """Drain the pending buffer oldest-first.

        Only meaningful while connected with a live exchange handle;
        otherwise it leaves the buffer untouched.
        """
        failures = []
        with self._connection.lock:
            if not self._connection.is_connected or self._exchange is None:
                skipped = len(self._buffer)
                drained = None
            else:
                drained = 0
                while not self._buffer.is_empty() and self._exchange is not None:
                    message = self._buffer.shift()
                    error, _ = self._route_locked(message)
                    if error is not None:
                        failures.append((message, error))
                    drained += 1
                skipped = len(self._buffer)

        if drained is None:
            logger.debug(f"Flush skipped: not connected, {skipped} message(s) pending")
            return
        for message, error in failures:
            self._report(message, error, None)
        if skipped:
            logger.warning(f"Exchange went away while flushing, {skipped} message(s) kept")
        if drained:
            logger.info(f"Flushed {drained} buffered message(s)")

    def _route_locked(self, message: OutboundMessage) -> Tuple[Optional[Exception], Optional[OutboundMessage]]:
        """Publish through the held exchange, or buffer when there is none.

        Returns the publish failure (the message is then lost) and the
        message evicted to make room, if any.
        """
        exchange = self._exchange
        if exchange is None:
            # Connected transport but no exchange handle yet.
            return None, self._buffer_locked(message)
        try:
            exchange.publish(message.routing_key, message.payload)
        except Exception as e:
            return e, None
        self._published += 1
        return None, None

    def _buffer_locked(self, message: OutboundMessage) -> Optional[OutboundMessage]:
        evicted = self._buffer.push(message)
        if evicted is not None:
            self._evicted += 1
        return evicted

    def _report(
        self,
        message: OutboundMessage,
        error: Optional[Exception],
        evicted: Optional[OutboundMessage],
    ) -> None:
        if error is not None:
            logger.error(
                f"Failed to publish message with routing key '{message.routing_key}', message lost: {error}",
                exc_info=error,
            )
        if evicted is not None:
            logger.debug(
                f"Pending buffer full ({self._buffer.capacity}), evicted oldest message "
                f"with routing key '{evicted.routing_key}'"
            )

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------
    def handle_ready(self, exchange: Publisher) -> None:
        with self._connection.lock:
            self._exchange = exchange
            connected = self._connection.transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTED)
            pending = len(self._buffer)

        if connected:
            logger.info(f"Connected to broker, {pending} message(s) pending")
        else:
            logger.info("Exchange handle replaced while connected")
        self._notifier.emit(StreamEvent.CONNECT)
        self.flush()

    def handle_close(self, reason: Optional[Any] = None) -> None:
        with self._connection.lock:
            self._exchange = None
            was_connected = self._connection.transition(ConnectionState.CONNECTED, ConnectionState.DISCONNECTED)

        if was_connected:
            logger.warning(f"Broker connection closed: {reason}")
        self._notifier.emit(StreamEvent.CLOSE)

    def handle_error(self, error: Optional[BaseException] = None) -> None:
        with self._connection.lock:
            self._exchange = None
            self._connection.transition(ConnectionState.CONNECTED, ConnectionState.DISCONNECTED)

        logger.error(f"Broker connection error: {error}")
        self._notifier.emit(StreamEvent.ERROR, error)
