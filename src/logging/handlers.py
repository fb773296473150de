# src/logging/handlers.py - v3
"""Size-based log file rotation."""

from __future__ import annotations

import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

_UNITS = {"": 1, "B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}
_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMG]?B)?$", re.IGNORECASE)


def parse_size(size_str: str) -> int:
    """Bytes in a size such as ``"10MB"``, ``"1.5 GB"`` or ``"4096"``."""
    match = _SIZE_RE.match(size_str.strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    number, unit = match.groups()
    size = int(float(number) * _UNITS[(unit or "").upper()])
    if size <= 0:
        raise ValueError(f"Invalid size format: {size_str!r}. Size must be positive.")
    return size


def create_rotating_handler(
    log_file: str | Path,
    rotation: str = "10MB",
    retention: int = 5,
) -> RotatingFileHandler:
    """Open ``log_file`` for appending, rolling over at ``rotation`` bytes.

    Parent directories are created. ``retention`` rolled-over files are kept
    as ``<name>.1`` ... ``<name>.N``.
    """
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=parse_size(rotation),
        backupCount=max(retention, 0),
        encoding="utf-8",
        delay=True,
    )
