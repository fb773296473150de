# src/executable/models.py - v1
"""Persisted record of an installed executable."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ExecutableRecord(BaseModel):
    """One installed (version, target) pair, written next to the binary."""

    version: str
    platform: str
    os_name: str
    architecture: str
    path: str
    content_hash: str
    artifact_hash: str | None = None
    download_url: str
    download_attempts: int = 1
    file_size: int = 0
    downloaded_at: datetime
    last_used_at: datetime
