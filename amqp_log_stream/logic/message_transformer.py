from __future__ import annotations

"""Turns one structured log record into a routing key and a JSON payload."""

import copy
import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Union

from ..common.errors import MalformedRecordError, ReshapeError
from .levels import level_name

logger = logging.getLogger(__name__)

# Fields renamed into the canonical document or dropped outright.
EXCLUDED_FIELDS = ("time", "msg", "v", "level")


class _Drop:
    """Marker returned by a message formatter to suppress a message."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DROP"

    def __bool__(self) -> bool:
        return False


DROP = _Drop()


class OutboundMessage(NamedTuple):
    routing_key: str
    payload: bytes


MessageFormatter = Callable[[Dict[str, Any]], Union[Mapping, _Drop]]


def to_iso_timestamp(value: Any) -> str:
    """Render *value* as an ISO-8601 UTC timestamp with millisecond precision."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedRecordError(f"Unparsable record time: {value!r}")
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise MalformedRecordError(f"Record time out of range: {value!r}")
    else:
        raise MalformedRecordError(f"Record time has unsupported type {type(value).__name__}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(document: Mapping) -> bytes:
    try:
        return json.dumps(document, default=_json_default, check_circular=True).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedRecordError(f"Cannot serialize log record: {e}")


class MessageTransformer:
    """Reshapes raw records into the document shape consumed downstream.

    Holds only per-stream configuration; ``transform`` is a pure function of
    the record and that configuration.
    """

    def __init__(
        self,
        *,
        server: str,
        application: str,
        pid: int,
        tags: Sequence[str] = ("app",),
        type: Optional[str] = None,
        routing_key: Optional[str] = None,
        message_formatter: Optional[MessageFormatter] = None,
    ) -> None:
        self.server = server
        self.application = application
        self.pid = pid
        self.tags: List[str] = list(tags)
        self.type = type
        self.routing_key = routing_key
        self.message_formatter = message_formatter

    @property
    def source(self) -> str:
        return f"{self.server}/{self.application}"

    def build_document(self, record: Mapping) -> Dict[str, Any]:
        """Merge *record* into the canonical document (no formatter applied)."""
        if not isinstance(record, Mapping):
            raise MalformedRecordError(f"Log record must be a mapping, got {type(record).__name__}")
        if "time" not in record:
            raise MalformedRecordError("Log record has no 'time' field")
        if "msg" not in record:
            raise MalformedRecordError("Log record has no 'msg' field")
        if "level" not in record:
            raise MalformedRecordError("Log record has no 'level' field")

        try:
            rec = copy.deepcopy(dict(record))
        except (TypeError, copy.Error, RecursionError) as e:
            raise MalformedRecordError(f"Log record cannot be copied: {e}")

        document: Dict[str, Any] = {
            "timestamp": to_iso_timestamp(rec["time"]),
            "message": rec["msg"],
            "tags": list(self.tags),
            "source": self.source,
            "level": level_name(rec.get("level")),
        }
        if isinstance(self.type, str):
            document["type"] = self.type

        for field in EXCLUDED_FIELDS:
            rec.pop(field, None)
        rec["pid"] = self.pid

        document.update(rec)
        return document

    def transform(self, record: Mapping) -> Union[OutboundMessage, _Drop]:
        document = self.build_document(record)
        level = document["level"]

        if self.message_formatter is not None:
            reshaped = self.message_formatter(document)
            if reshaped is DROP:
                logger.debug("Message formatter dropped a record")
                return DROP
            if not isinstance(reshaped, Mapping):
                raise ReshapeError(
                    f"Message formatter must return a mapping or DROP, got {type(reshaped).__name__}"
                )
            document = reshaped

        routing_key = self.routing_key or str(level)
        return OutboundMessage(routing_key, serialize(document))
