from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from .publisher import Publisher


class TransportListener(ABC):
    """Callbacks a transport invokes as the broker connection changes.

    ``handle_ready`` fires once the exchange is usable; ``handle_close`` and
    ``handle_error`` fire when it no longer is. Reconnecting is the
    transport's job, listeners only react.
    """

    @abstractmethod
    def handle_ready(self, exchange: Publisher) -> None:
        pass

    @abstractmethod
    def handle_close(self, reason: Optional[Any] = None) -> None:
        pass

    @abstractmethod
    def handle_error(self, error: Optional[BaseException] = None) -> None:
        pass
