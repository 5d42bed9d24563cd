"""Structured logging configuration for b2fs.

Upload and store calls attach context through ``extra``: the operation,
the store key, the large-file id, the part number and a duration. Both
formatters render whichever of those fields a record carries, so a
multi-part upload can be followed line by line in text or JSON output.
"""

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

# Context fields rendered by both formatters, in output order.
CONTEXT_FIELDS = ("operation", "key", "file_id", "part_number", "duration_ms")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    fields = {}
    for name in CONTEXT_FIELDS:
        val = getattr(record, name, None)
        if val is not None:
            fields[name] = val
    return fields


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus any context fields.
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
        entry.update(_context(record))
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable formatter that appends context fields as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _context(record)
        if not fields:
            return line
        # Keep a traceback, if any, on the lines after the context.
        first, sep, rest = line.partition("\n")
        suffix = " ".join(f"{name}={val}" for name, val in fields.items())
        return f"{first} [{suffix}]{sep}{rest}"


class UploadLogAdapter(logging.LoggerAdapter):
    """Logger bound to one upload's key and file id.

    Per-call ``extra`` values are merged over the bound ones, so callers
    only pass what changes between lines (operation, part number).
    """

    def __init__(self, logger: logging.Logger, key: str, file_id: str | None = None) -> None:
        super().__init__(logger, {"key": key, "file_id": file_id})

    def bind(self, **fields: Any) -> "UploadLogAdapter":
        """Return a copy with more fields bound (e.g. the file id once known)."""
        bound = UploadLogAdapter(self.logger, self.extra["key"], self.extra["file_id"])
        bound.extra = {**self.extra, **fields}
        return bound

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure root logging with the specified level and format.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: 'text' for human-readable output, 'json' for structured.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ContextTextFormatter())
    root.addHandler(handler)
