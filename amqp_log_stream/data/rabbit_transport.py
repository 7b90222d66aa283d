from __future__ import annotations

"""RabbitMQ transport built on pika's asynchronous ``SelectConnection``.

Owns the physical connection, declares the exchange and reconnects after
failures; every state change is reported to a :class:`TransportListener`.
The pika I/O loop runs on a dedicated thread, and all channel operations are
scheduled onto it because pika channels are not thread-safe.
"""

import functools
import logging
import ssl
import threading
from typing import Any, Dict, Optional

import pika
import pika.exceptions

from ..config.stream_config import StreamConfig
from ..domain.publisher import Publisher
from ..domain.transport_listener import TransportListener

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE_TYPE = "topic"
PERSISTENT_DELIVERY = 2
TRANSIENT_DELIVERY = 1


def exchange_declare_kwargs(properties: Dict[str, Any]) -> Dict[str, Any]:
    """Translate exchange descriptor properties into ``exchange_declare`` options."""
    return {
        "exchange_type": properties.get("type", DEFAULT_EXCHANGE_TYPE),
        "passive": bool(properties.get("passive", False)),
        "durable": bool(properties.get("durable", False)),
        "auto_delete": bool(properties.get("auto_delete", properties.get("autoDelete", False))),
        "internal": bool(properties.get("internal", False)),
        "arguments": properties.get("arguments"),
    }


def build_ssl_options(config: StreamConfig) -> Optional[pika.SSLOptions]:
    if not config.ssl_enable:
        return None

    context = ssl.create_default_context(cafile=config.ssl_ca or None)
    if config.ssl_cert:
        context.load_cert_chain(config.ssl_cert, keyfile=config.ssl_key or None)
    if not config.ssl_reject_unauthorized:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return pika.SSLOptions(context, server_hostname=config.host)


def build_connection_parameters(config: StreamConfig) -> pika.ConnectionParameters:
    return pika.ConnectionParameters(
        host=config.host,
        port=config.port,
        virtual_host=config.vhost,
        credentials=pika.PlainCredentials(config.login, config.password),
        ssl_options=build_ssl_options(config),
    )


class RabbitExchange(Publisher):
    """Publish handle for one declared exchange on an open channel."""

    def __init__(self, connection, channel, name: str, persistent: bool = True) -> None:
        self._connection = connection
        self._channel = channel
        self.name = name
        self._properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=PERSISTENT_DELIVERY if persistent else TRANSIENT_DELIVERY,
        )

    def publish(self, routing_key: str, payload: bytes) -> None:
        self._connection.ioloop.add_callback_threadsafe(
            functools.partial(self._basic_publish, routing_key, payload)
        )

    def _basic_publish(self, routing_key: str, payload: bytes) -> None:
        if not self._channel.is_open:
            logger.warning(f"Channel closed before publish, message with routing key '{routing_key}' lost")
            return
        try:
            self._channel.basic_publish(
                exchange=self.name,
                routing_key=routing_key,
                body=payload,
                properties=self._properties,
            )
            logger.debug(f"Published message to exchange '{self.name}' with key '{routing_key}'")
        except pika.exceptions.AMQPError as e:
            logger.error(f"Failed to publish message to exchange '{self.name}': {e}")


class RabbitTransport:
    """Keeps a connection to the broker alive and reports on it.

    Reconnects forever, ``reconnect_delay`` seconds after each failure, until
    ``stop`` is called.
    """

    def __init__(self, config: StreamConfig, listener: TransportListener) -> None:
        self._config = config
        self._listener = listener
        self._connection = None
        self._channel = None
        self._stopping = False
        # Guards _stopping and _connection between stop() and the run loop.
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Transport already running. Ignoring duplicate start() call.")
            return
        self._stopping = False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="RabbitTransportThread", daemon=True)
        self._thread.start()

    def run(self) -> None:
        """Blocking connect/reconnect loop. Runs the pika I/O loop until stopped."""
        while not self._stopping:
            try:
                with self._lock:
                    if self._stopping:
                        break
                    connection = self._connection = self.connect()
                connection.ioloop.start()
            except Exception as e:
                logger.error(f"RabbitMQ transport failure: {e}", exc_info=True)
                self._channel = None
                self._listener.handle_error(e)

            if not self._stopping:
                logger.info(f"Reconnecting to RabbitMQ in {self._config.reconnect_delay}s...")
                self._stop_event.wait(self._config.reconnect_delay)

        logger.info("RabbitMQ transport loop terminated.")

    def connect(self):
        logger.info(f"Connecting to RabbitMQ at {self._config.host}:{self._config.port}{self._config.vhost}")
        return pika.SelectConnection(
            parameters=build_connection_parameters(self._config),
            on_open_callback=self._on_connection_open,
            on_open_error_callback=self._on_connection_open_error,
            on_close_callback=self._on_connection_closed,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Close the connection and end the reconnect loop."""
        with self._lock:
            self._stopping = True
            connection = self._connection
        self._stop_event.set()
        if connection is not None:
            try:
                connection.ioloop.add_callback_threadsafe(self._close_connection)
            except Exception as e:
                logger.error(f"Error scheduling RabbitMQ connection close: {e}")
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.info("RabbitMQ transport stopped.")

    def _close_connection(self) -> None:
        connection = self._connection
        if connection is None:
            return
        if connection.is_closing or connection.is_closed:
            connection.ioloop.stop()
        else:
            logger.info("Closing RabbitMQ connection")
            connection.close()

    # ------------------------------------------------------------------
    # pika callbacks (I/O loop thread)
    # ------------------------------------------------------------------
    def _on_connection_open(self, connection) -> None:
        if self._stopping:
            logger.info("Transport stopping, closing freshly opened connection")
            connection.close()
            return
        logger.info(f"Successfully connected to RabbitMQ at {self._config.host}")
        connection.channel(on_open_callback=self._on_channel_open)

    def _on_connection_open_error(self, connection, error) -> None:
        logger.warning(f"Connection to RabbitMQ failed: {error}")
        self._channel = None
        self._listener.handle_error(error)
        connection.ioloop.stop()

    def _on_connection_closed(self, connection, reason) -> None:
        self._channel = None
        self._listener.handle_close(reason)
        connection.ioloop.stop()

    def _on_channel_open(self, channel) -> None:
        self._channel = channel
        channel.add_on_close_callback(self._on_channel_closed)

        exchange = self._config.exchange
        if not exchange.name:
            # The default exchange always exists and cannot be declared.
            self._on_exchange_declareok(None, channel=channel)
            return

        channel.exchange_declare(
            exchange=exchange.name,
            callback=functools.partial(self._on_exchange_declareok, channel=channel),
            **exchange_declare_kwargs(exchange.properties),
        )

    def _on_channel_closed(self, channel, reason) -> None:
        logger.warning(f"Channel {channel} was closed: {reason}")
        self._channel = None
        connection = self._connection
        if connection is not None and not (connection.is_closing or connection.is_closed):
            connection.close()

    def _on_exchange_declareok(self, _frame, channel) -> None:
        exchange = self._config.exchange
        logger.info(f"Exchange '{exchange.name}' declared")
        handle = RabbitExchange(
            self._connection,
            channel,
            exchange.name,
            persistent=bool(exchange.properties.get("persistent", True)),
        )
        self._listener.handle_ready(handle)
