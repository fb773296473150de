# src/cache/json_store.py - v3
"""JSON file-based cache store (default WEAVER_CACHE_BACKEND=json).

One file per entry under ``{cache_root}/entries/{fp[:2]}/``. Writes go through
a temp file and ``os.replace``, so writers for distinct fingerprints never
contend and a reader never sees a half-written entry.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from weaverkit.cache.base_cache_store import BaseCacheStore, Clock, FreshnessPolicy
from weaverkit.cache.models import CacheEntry
from weaverkit.core.errors import CacheCorruption
from weaverkit.storage.atomic import atomic_write_text
from weaverkit.storage.layout import entries_dir, entry_path

logger = logging.getLogger(__name__)


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(
        self,
        cache_root: Path | str,
        *,
        policy: FreshnessPolicy | None = None,
        max_size_bytes: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(policy=policy, max_size_bytes=max_size_bytes, clock=clock)
        self._root = Path(cache_root).expanduser()
        entries_dir(self._root).mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def get(self, key: str) -> CacheEntry | None:
        path = entry_path(self._root, key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise CacheCorruption(key, f"unreadable: {e}") from e
        try:
            return CacheEntry.model_validate_json(text)
        except ValidationError as e:
            raise CacheCorruption(key, f"invalid JSON entry ({e.error_count()} errors)") from e

    def put(self, key: str, entry: CacheEntry) -> None:
        atomic_write_text(entry_path(self._root, key), entry.model_dump_json(indent=2))

    def delete(self, key: str) -> bool:
        path = entry_path(self._root, key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self) -> list[str]:
        root = entries_dir(self._root)
        if not root.is_dir():
            return []
        return sorted(p.stem for p in root.glob("*/*.json"))

    def entry_size(self, key: str) -> int:
        try:
            return entry_path(self._root, key).stat().st_size
        except FileNotFoundError:
            return 0
