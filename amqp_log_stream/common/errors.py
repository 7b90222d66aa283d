class LogStreamError(Exception):
    """Base class for errors raised by the log stream."""


class MalformedRecordError(LogStreamError):
    """A log record cannot be turned into a message (bad timestamp, cycles, ...)."""


class ReshapeError(LogStreamError, TypeError):
    """The configured message formatter returned something other than a mapping or DROP."""
