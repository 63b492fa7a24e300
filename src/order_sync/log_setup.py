"""JSON console logging for the sync engine and the order watcher."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from .redaction import sanitize_for_logging, sanitize_text

# Attributes every LogRecord carries; anything else was passed through `extra=`.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonConsoleFormatter(logging.Formatter):
    """One redacted JSON object per record, with `extra=` fields under "context"."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_text(record.getMessage()),
        }
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if context:
            event["context"] = sanitize_for_logging(context)
        if record.exc_info:
            event["exception"] = sanitize_text(self.formatException(record.exc_info))
        if record.stack_info:
            event["stack"] = sanitize_text(self.formatStack(record.stack_info))
        return json.dumps(event, default=str, ensure_ascii=False)


def setup_logger(
    name: str = "order_sync",
    level: int | str = logging.INFO,
    *,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Return the named logger with a single JSON handler attached.

    Calling it again only updates the level; the handler is installed once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(JsonConsoleFormatter())
        logger.addHandler(handler)
    return logger
