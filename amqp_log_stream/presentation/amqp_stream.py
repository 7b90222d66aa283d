from __future__ import annotations

"""Presentation-layer sink that logging frameworks write records into.

Wires the message transformer, the buffered publisher and the RabbitMQ
transport together. ``write`` never blocks and never raises for ordinary
operation: malformed records are logged and reported as ``ERROR`` events,
connectivity problems only change where messages go (exchange or buffer).
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional

from ..common.errors import MalformedRecordError
from ..common.events import EventNotifier, Observer, StreamEvent
from ..config.stream_config import StreamConfig
from ..data.rabbit_transport import RabbitTransport
from ..domain.buffered_publisher import BufferedPublisher
from ..logic.levels import resolve_level
from ..logic.message_transformer import DROP, MessageTransformer
from ..state.connection_state import ConnectionState

logger = logging.getLogger(__name__)

TransportFactory = Callable[[StreamConfig, BufferedPublisher], Any]


class AmqpStream:
    """Log sink publishing every record to an AMQP exchange."""

    name = "amqp"

    def __init__(
        self,
        config: Optional[StreamConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = RabbitTransport,
        **options: Any,
    ) -> None:
        if config is None:
            config = StreamConfig(**options)
        elif options:
            raise TypeError("Pass either a StreamConfig or keyword options, not both")

        self.config = config
        self.level = resolve_level(config.level)

        self._notifier = EventNotifier()
        self.publisher = BufferedPublisher(config.buffer_size, notifier=self._notifier)
        self.transformer = MessageTransformer(
            server=config.server,
            application=config.application,
            pid=config.pid,
            tags=config.tags,
            type=config.type,
            routing_key=config.exchange.routing_key,
            message_formatter=config.message_formatter,
        )
        self._transport = transport_factory(config, self.publisher) if transport_factory else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._transport is None:
            logger.warning("No transport configured, records will stay buffered")
            return
        self._transport.start()

    def stop(self) -> None:
        if self._transport is not None:
            self._transport.stop()
        pending = self.publisher.pending
        if pending:
            logger.warning(f"Stopping with {pending} undelivered message(s) in buffer")

    @property
    def connected(self) -> bool:
        return self.publisher.state is ConnectionState.CONNECTED

    def subscribe(self, event: StreamEvent, callback: Observer) -> None:
        self._notifier.subscribe(event, callback)

    def unsubscribe(self, event: StreamEvent, callback: Observer) -> None:
        self._notifier.unsubscribe(event, callback)

    def flush(self) -> None:
        self.publisher.flush()

    # ------------------------------------------------------------------
    # Sink
    # ------------------------------------------------------------------
    def write(self, entry: Any) -> None:
        try:
            record = self._parse(entry)
            if self._below_threshold(record):
                return
            message = self.transformer.transform(record)
        except MalformedRecordError as e:
            logger.error(f"Rejected log record: {e}")
            self._notifier.emit(StreamEvent.ERROR, e)
            return

        if message is DROP:
            return
        self.publisher.send(message.routing_key, message.payload)

    def _parse(self, entry: Any) -> Mapping:
        if isinstance(entry, (bytes, bytearray)):
            try:
                entry = entry.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedRecordError(f"Log line is not valid UTF-8: {e}")
        if isinstance(entry, str):
            try:
                entry = json.loads(entry)
            except ValueError as e:
                raise MalformedRecordError(f"Log line is not valid JSON: {e}")
        if not isinstance(entry, Mapping):
            raise MalformedRecordError(f"Log record must be a mapping, got {type(entry).__name__}")
        return entry

    def _below_threshold(self, record: Mapping) -> bool:
        level = record.get("level")
        return isinstance(level, int) and not isinstance(level, bool) and level < self.level


def create_stream(config: Optional[StreamConfig] = None, **options: Any) -> AmqpStream:
    return AmqpStream(config, **options)
