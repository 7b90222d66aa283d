from __future__ import annotations

import os
import socket
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union


def _default_application() -> str:
    name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else ""
    return name or "python"


@dataclass
class ExchangeDescriptor:
    """Exchange to publish to.

    ``properties`` holds the declare options (``type``, ``durable``,
    ``auto_delete``, ``internal``, ``passive``, ``arguments``) plus
    ``persistent`` for the delivery mode of published messages.
    """

    name: str = "logs"
    routing_key: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Union["ExchangeDescriptor", Dict[str, Any], str, None]) -> "ExchangeDescriptor":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls(name=value)
        if isinstance(value, dict):
            return cls(
                name=value.get("name", "logs"),
                routing_key=value.get("routing_key", value.get("routingKey")),
                properties=dict(value.get("properties") or {}),
            )
        raise TypeError(f"Unsupported exchange descriptor: {value!r}")


@dataclass
class StreamConfig:
    host: str = "localhost"
    port: int = 5672
    vhost: str = "/"
    login: str = "guest"
    password: str = "guest"
    level: Union[str, int] = "info"
    server: str = field(default_factory=socket.gethostname)
    application: str = field(default_factory=_default_application)
    pid: int = field(default_factory=os.getpid)
    tags: List[str] = field(default_factory=lambda: ["app"])
    type: Optional[str] = None
    buffer_size: int = 100
    ssl_enable: bool = False
    ssl_key: str = ""
    ssl_cert: str = ""
    ssl_ca: str = ""
    ssl_reject_unauthorized: bool = True
    exchange: ExchangeDescriptor = field(default_factory=ExchangeDescriptor)
    message_formatter: Optional[Callable[[Dict[str, Any]], Any]] = None
    reconnect_delay: float = 5.0
    logging_level: str = "INFO"

    def __post_init__(self) -> None:
        self.exchange = ExchangeDescriptor.coerce(self.exchange)
        self.tags = list(self.tags)
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {self.buffer_size}")
