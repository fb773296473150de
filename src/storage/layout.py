# src/storage/layout.py - v2
"""On-disk layout of the result cache and the executable store.

Result cache (JSON backend)::

    {cache_root}/entries/{fp[:2]}/{fingerprint}.json
    {cache_root}/weaverkit_cache.db              (SQLite backend)

Executable store::

    {executable_root}/{version}/{target}/weaver[.exe]
    {executable_root}/{version}/{target}/record.json
    {executable_root}/.tmp/{download_id}/        (in-flight downloads)
"""

from __future__ import annotations

import re
from pathlib import Path

ENTRIES_DIR = "entries"
SQLITE_DB_NAME = "weaverkit_cache.db"
TMP_DIR = ".tmp"
RECORD_FILE = "record.json"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._+-]")


def sanitize_component(value: str) -> str:
    """Strip anything that could escape a single path component."""
    cleaned = _UNSAFE_CHARS.sub("", value).strip(".")
    if not cleaned:
        raise ValueError(f"Unusable path component: {value!r}")
    return cleaned


# --- Result cache ---

def entries_dir(cache_root: Path) -> Path:
    return cache_root / ENTRIES_DIR


def entry_path(cache_root: Path, fingerprint: str) -> Path:
    """Return the JSON file for a fingerprint, sharded on its first two chars."""
    safe = sanitize_component(fingerprint)
    return entries_dir(cache_root) / safe[:2] / f"{safe}.json"


def sqlite_db_path(cache_root: Path) -> Path:
    return cache_root / SQLITE_DB_NAME


# --- Executable store ---

def version_dir(executable_root: Path, version: str) -> Path:
    return executable_root / sanitize_component(version)


def install_dir(executable_root: Path, version: str, target: str) -> Path:
    return version_dir(executable_root, version) / sanitize_component(target)


def executable_path(executable_root: Path, version: str, target: str, name: str) -> Path:
    return install_dir(executable_root, version, target) / name


def record_path(executable_root: Path, version: str, target: str) -> Path:
    return install_dir(executable_root, version, target) / RECORD_FILE


def tmp_dir(executable_root: Path) -> Path:
    return executable_root / TMP_DIR
