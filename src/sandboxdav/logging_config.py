"""Structured logging configuration for SandboxDAV.

Request and write-saga context travels on log records as ``extra`` fields
(``sandbox``, ``write_key``, ``status`` and so on). The JSON formatter emits
every such field; the text format shows the common ones after the message.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else arrived via ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s%(context)s"


def record_extras(record: logging.LogRecord) -> dict:
    """Return the non-standard attributes attached to a record."""
    return {
        key: val
        for key, val in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and val is not None
    }


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, exception (if any), then
    every extra attached to the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key, val in record_extras(record).items():
            entry.setdefault(key, val)
        return json.dumps(entry, default=str)


class ContextFilter(logging.Filter):
    """Renders a record's extras as ``[key=value ...]`` for the text format."""

    def filter(self, record: logging.LogRecord) -> bool:
        extras = record_extras(record)
        extras.pop("context", None)
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in extras.items()) + "]" if extras else ""
        )
        return True


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: 'text' for human-readable lines, 'json' for structured output.
    """
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.addFilter(ContextFilter())
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
