import logging

TRACE = 10
DEBUG = 20
INFO = 30
WARN = 40
ERROR = 50
FATAL = 60

LEVEL_NAMES = {
    TRACE: "trace",
    DEBUG: "debug",
    INFO: "info",
    WARN: "warn",
    ERROR: "error",
    FATAL: "fatal",
}

NAME_TO_LEVEL = {name: number for number, name in LEVEL_NAMES.items()}
NAME_TO_LEVEL["warning"] = WARN
NAME_TO_LEVEL["critical"] = FATAL

# stdlib logging numbers -> record severities
PY_LEVELS = [
    (logging.CRITICAL, FATAL),
    (logging.ERROR, ERROR),
    (logging.WARNING, WARN),
    (logging.INFO, INFO),
    (logging.DEBUG, DEBUG),
]


def level_name(level):
    """Known severities map to their name; anything else is returned unchanged."""
    if isinstance(level, bool):
        return level
    return LEVEL_NAMES.get(level, level)


def resolve_level(level):
    """Turn a level given by name or number into its numeric severity."""
    if isinstance(level, bool):
        raise ValueError(f"Invalid log level: {level!r}")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        key = level.strip().lower()
        if key.isdigit():
            return int(key)
        if key in NAME_TO_LEVEL:
            return NAME_TO_LEVEL[key]
    raise ValueError(f"Invalid log level: {level!r}")


def from_python_level(levelno):
    """Map a stdlib ``logging`` level number onto the record severity scale."""
    for threshold, severity in PY_LEVELS:
        if levelno >= threshold:
            return severity
    return TRACE
