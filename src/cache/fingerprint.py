# src/cache/fingerprint.py - v3
"""Deterministic cache keys over operation, configuration, tool version and inputs.

Inputs are hashed by content, never by mtime, and combined in sorted path
order so that discovery order, checkout location and platform do not change
the result. Configuration is normalized to canonical JSON first so that key
order does not matter either.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from pathlib import Path, PurePath
from typing import Any

from weaverkit.cache.models import Fingerprint
from weaverkit.config.models import ResolvedConfig
from weaverkit.core.errors import InputUnreadable

SCHEMA_EXTENSIONS = (".yaml", ".yml", ".json", ".proto")

_HASH_CHUNK_SIZE = 1024 * 1024


def build_fingerprint(
    operation: str,
    resolved_config: ResolvedConfig,
    input_files: Iterable[Path | str],
    *,
    base_dir: Path | None = None,
    options: Mapping[str, Any] | None = None,
) -> Fingerprint:
    """Compute the fingerprint of one operation on one project.

    Args:
        operation: Operation kind (validate, generate, docs, ...).
        resolved_config: Merged project configuration, including tool version.
        input_files: Every file whose content can influence the result.
        base_dir: Root against which file paths are made relative.
            Defaults to the project root.
        options: Operation-specific options that reach the tool's command line.

    Returns:
        Fingerprint with the combined digest and its components.

    Raises:
        InputUnreadable: If any input file cannot be read.
    """
    root = base_dir if base_dir is not None else resolved_config.project_root

    file_hashes: dict[str, str] = {}
    for path in input_files:
        file_hashes[_display_path(Path(path), root)] = hash_file(path)

    config_part = {
        "config": resolved_config.fingerprint_payload(),
        "options": dict(options or {}),
    }
    config_hash = sha256_text(canonical_json(config_part))

    payload = {
        "operation": operation,
        "tool_version": resolved_config.version,
        "config_hash": config_hash,
        "files": [[name, file_hashes[name]] for name in sorted(file_hashes)],
    }

    return Fingerprint(
        digest=sha256_text(canonical_json(payload)),
        operation=operation,
        project=resolved_config.project,
        tool_version=resolved_config.version,
        config_hash=config_hash,
        file_hashes=dict(sorted(file_hashes.items())),
    )


def hash_file(path: Path | str) -> str:
    """SHA-256 of a file's content, read in chunks.

    Raises:
        InputUnreadable: If the file cannot be opened or read.
    """
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as e:
        raise InputUnreadable(str(path), e.strerror or str(e)) from e
    return digest.hexdigest()


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonical_json(data: Any) -> str:
    """Serialize to canonical JSON: sorted keys, no whitespace, ASCII only."""
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=_json_default
    )


def collect_input_files(
    directory: Path | str,
    extensions: tuple[str, ...] = SCHEMA_EXTENSIONS,
) -> list[Path]:
    """Recursively collect schema files under ``directory``, sorted by path.

    A missing directory yields an empty list.
    """
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted(
        p for p in root.rglob("*")
        if p.is_file() and p.suffix.lower() in extensions
    )


def _display_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def _json_default(obj: Any) -> Any:
    if isinstance(obj, PurePath):
        return obj.as_posix()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
