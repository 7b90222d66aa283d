import logging
import socket
from datetime import datetime, timezone

from ..logic.levels import from_python_level

# Loggers whose records would feed back into the stream that emitted them
IGNORED_LOGGERS = ("amqp_log_stream", "pika")

_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


class FeedbackFilter(logging.Filter):
    """Rejects records from loggers that would loop back into the stream.

    Runs in ``Handler.handle`` before the handler lock is taken, so the
    stream's own diagnostics never wait on that lock.
    """

    def filter(self, record):
        return record.name.split(".", 1)[0] not in IGNORED_LOGGERS


class AmqpLogHandler(logging.Handler):
    """Bridges stdlib ``logging`` into an :class:`AmqpStream`.

    Each ``LogRecord`` becomes a structured record (``time``, ``msg``,
    ``level``, ``v``, ``name``, ``hostname``, ``src``, ``err``) plus any
    attributes passed with ``extra=``.
    """

    def __init__(self, stream, level=logging.NOTSET):
        super().__init__(level)
        self.stream = stream
        self.hostname = socket.gethostname()
        self.addFilter(FeedbackFilter())

    def emit(self, record):
        try:
            entry = self.to_entry(record)
        except Exception:
            self.handleError(record)
            return
        self.stream.write(entry)

    def to_entry(self, record):
        entry = {
            "name": record.name,
            "hostname": self.hostname,
            "level": from_python_level(record.levelno),
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc),
            "v": 0,
            "src": {"file": record.pathname, "line": record.lineno, "func": record.funcName},
        }
        if record.exc_info and record.exc_info[1] is not None:
            exc_type, exc, _ = record.exc_info
            entry["err"] = {
                "name": exc_type.__name__,
                "message": str(exc),
                "stack": self.formatException(record.exc_info),
            }

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value
        return entry

    def formatException(self, exc_info):
        return logging.Formatter().formatException(exc_info)
