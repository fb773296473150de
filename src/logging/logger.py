# src/logging/logger.py - v3
"""Logger setup for weaverkit: context filter, JSON and text formatters.

Every record passing through a weaverkit handler is stamped with the current
project, operation, fingerprint and step by ContextFilter, so the formatters
only read record attributes.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from weaverkit.logging.context import get_context

ROOT_LOGGER = "weaverkit"
CONTEXT_FIELDS = ("project", "operation", "fingerprint", "step")

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s%(context_label)s - %(message)s"
_TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ContextFilter(logging.Filter):
    """Copy the operation context onto each record. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        for name in CONTEXT_FIELDS:
            setattr(record, name, getattr(ctx, name))
        record.context_label = _context_label(record)
        return True


def _context_label(record: logging.LogRecord) -> str:
    project = getattr(record, "project", None)
    operation = getattr(record, "operation", None)
    step = getattr(record, "step", None)
    label = ""
    if project:
        label += f" [{project}:{operation}]" if operation else f" [{project}]"
    if step:
        label += f" ({step})"
    return label


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Context fields are grouped under ``context``; a mapping passed as
    ``extra={"data": {...}}`` is emitted under ``data``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            name: getattr(record, name)
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        }
        if context:
            entry["context"] = context

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``time [LEVEL] logger [project:operation] (step) - message``"""

    def __init__(self) -> None:
        super().__init__(fmt=_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "context_label"):
            record.context_label = _context_label(record)
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the weaverkit hierarchy."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | Path | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> logging.Logger:
    """Configure the ``weaverkit`` logger hierarchy. Safe to call repeatedly.

    Console output goes to stderr so that stdout carries only command results.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        log_format: "json" or "text".
        log_file: Optional file that also receives every record.
        rotation: Size at which the file rolls over, e.g. "10MB".
        retention: Number of rolled-over files to keep.

    Returns:
        The configured root weaverkit logger.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    context_filter = ContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from weaverkit.logging.handlers import create_rotating_handler

        handlers.append(create_rotating_handler(log_file, rotation=rotation, retention=retention))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))

    return root
