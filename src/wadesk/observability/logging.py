"""Structured JSON logging.

Module loggers live under the ``wadesk`` namespace and propagate to one stdout
handler installed on the package logger. The level is set in one place
(``configure_logging``) and uvicorn's own loggers are left untouched.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id

ROOT_LOGGER = "wadesk"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra_fields`` are merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlationId"] = correlation_id

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _has_json_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers)


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Install the stdout handler (once) and set the package log level.

    Handlers attached by others (test log capture, for instance) are left in
    place and do not count as ours.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not _has_json_handler(root):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, placed under the ``wadesk`` namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    if not _has_json_handler(logging.getLogger(ROOT_LOGGER)):
        configure_logging()
    return logging.getLogger(name)
