# src/storage/atomic.py - v1
"""Atomic file replacement.

Writers stage content in a uniquely named sibling file, fsync it, then
``os.replace`` it over the target. Readers therefore see either the previous
complete file or the new complete file, and concurrent writers to the same
path resolve to last-writer-wins without tearing.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write bytes to ``path`` atomically, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, content.encode(encoding))
