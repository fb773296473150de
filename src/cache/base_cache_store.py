# src/cache/base_cache_store.py - v2
"""Abstract cache store interface and the validity rules shared by all backends.

Backends implement four primitives (get, put, delete, keys) plus entry_size.
Everything that decides whether a stored result may be replayed lives here,
once, so that JSON and SQLite stores agree on freshness, integrity and
invalidation semantics.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from weaverkit.cache.fingerprint import canonical_json
from weaverkit.cache.models import (
    CacheEntry,
    CacheStats,
    CompactionReport,
    Fingerprint,
    OperationResult,
)
from weaverkit.config.settings import Settings
from weaverkit.core.errors import CacheCorruption

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FreshnessPolicy:
    """Per-operation freshness windows and failure caching rules."""

    windows: dict[str, float] = field(default_factory=dict)
    default_window: float = 3600.0
    cache_failures: frozenset[str] = frozenset({"validate"})

    @classmethod
    def from_settings(cls, settings: Settings) -> FreshnessPolicy:
        return cls(
            windows={op: float(s) for op, s in settings.freshness_windows.items()},
            default_window=float(settings.cache_ttl_default_s),
            cache_failures=frozenset(settings.cache_failures_for_list),
        )

    def window(self, operation: str) -> float:
        return self.windows.get(operation, self.default_window)

    def should_store(self, operation: str, result: OperationResult) -> bool:
        """Successful results are always stored; failures only where configured."""
        if self.window(operation) <= 0:
            return False
        return result.success or operation in self.cache_failures


def compute_integrity(entry: CacheEntry) -> str:
    """SHA-256 over the canonical JSON of every field except ``integrity``."""
    payload = entry.model_dump(mode="json", exclude={"integrity"})
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    def __init__(
        self,
        *,
        policy: FreshnessPolicy | None = None,
        max_size_bytes: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.policy = policy or FreshnessPolicy()
        self.max_size_bytes = max_size_bytes
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._invalidations = 0
        self._corrupt_reads = 0

    # --- Backend primitives ---

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        """Retrieve an entry by fingerprint, ``None`` if absent.

        Raises:
            CacheCorruption: If the stored entry cannot be deserialized.
        """

    @abstractmethod
    def put(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous one atomically."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if something was removed."""

    @abstractmethod
    def keys(self) -> list[str]:
        """All stored fingerprints, readable or not."""

    @abstractmethod
    def entry_size(self, key: str) -> int:
        """Stored size of an entry in bytes (0 if absent)."""

    def close(self) -> None:
        """Release backend resources."""

    # --- Policy-level operations ---

    def is_valid(self, fingerprint: Fingerprint | str, operation: str) -> bool:
        """Whether a fresh, intact entry exists for this fingerprint."""
        return self._fresh_entry(str(fingerprint), operation) is not None

    def lookup(self, fingerprint: Fingerprint | str, operation: str) -> OperationResult | None:
        """Replay a valid entry's result, or ``None`` on a miss."""
        key = str(fingerprint)
        entry = self._fresh_entry(key, operation)
        with self._lock:
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
        if entry is None:
            logger.debug("Cache miss for %s %s", operation, key[:12])
            return None
        logger.debug("Cache hit for %s %s", operation, key[:12])
        return entry.result.model_copy(update={"from_cache": True, "fingerprint": key})

    def store(
        self,
        fingerprint: Fingerprint | str,
        operation: str,
        result: OperationResult,
        *,
        project: str | None = None,
        freshness_window: timedelta | float | None = None,
    ) -> CacheEntry | None:
        """Persist a result under ``fingerprint``.

        Returns the stored entry, or ``None`` when the effective freshness
        window is zero (such results can never be replayed).
        """
        key = str(fingerprint)
        if isinstance(fingerprint, Fingerprint):
            project = project or fingerprint.project
        if not project:
            raise ValueError("project is required to store a cache entry")

        if freshness_window is None:
            window = self.policy.window(operation)
        elif isinstance(freshness_window, timedelta):
            window = freshness_window.total_seconds()
        else:
            window = float(freshness_window)
        if window <= 0:
            return None

        entry = CacheEntry(
            fingerprint=key,
            project=project,
            operation=operation,
            result=result.model_copy(update={"from_cache": False, "fingerprint": key}),
            created_at=self._clock(),
            freshness_window_s=window,
            file_hashes=fingerprint.file_hashes if isinstance(fingerprint, Fingerprint) else {},
            config_hash=fingerprint.config_hash if isinstance(fingerprint, Fingerprint) else "",
            tool_version=fingerprint.tool_version if isinstance(fingerprint, Fingerprint) else "",
        )
        entry = entry.model_copy(update={"integrity": compute_integrity(entry)})
        self.put(key, entry)
        with self._lock:
            self._stores += 1
        logger.debug("Stored %s result for %s (%s)", operation, project, key[:12])
        return entry

    def invalidate(self, project: str | None = None, operation: str | None = None) -> int:
        """Remove every entry matching the filters (all entries when both are None)."""
        removed = 0
        for key in self.keys():
            if project is not None or operation is not None:
                entry = self._read(key)
                if entry is None:
                    continue
                if project is not None and entry.project != project:
                    continue
                if operation is not None and entry.operation != operation:
                    continue
            if self.delete(key):
                removed += 1
        self._count_invalidations(removed)
        logger.info(
            "Invalidated %d cache entries (project=%s, operation=%s)",
            removed, project or "*", operation or "*",
        )
        return removed

    def compact(self, max_size_bytes: int | None = None) -> CompactionReport:
        """Drop expired and corrupt entries, then evict oldest until under the cap."""
        cap = max_size_bytes if max_size_bytes is not None else self.max_size_bytes
        report = CompactionReport()
        now = self._clock()
        survivors: list[tuple[datetime, str, int]] = []

        for key in self.keys():
            try:
                entry = self._verified_get(key)
            except CacheCorruption as e:
                logger.warning("Removing corrupt cache entry: %s", e.message)
                self.delete(key)
                report.corrupt += 1
                continue
            if entry is None:
                continue
            if not self._is_fresh(entry, entry.operation, now):
                self.delete(key)
                report.expired += 1
                continue
            survivors.append((entry.created_at, key, self.entry_size(key)))

        survivors.sort()
        total = sum(size for _, _, size in survivors)
        if cap is not None:
            while survivors and total > cap:
                _, key, size = survivors.pop(0)
                self.delete(key)
                total -= size
                report.evicted_for_size += 1

        report.remaining_entries = len(survivors)
        report.remaining_size_bytes = total
        logger.info(
            "Cache compaction: %d expired, %d corrupt, %d evicted, %d remaining",
            report.expired, report.corrupt, report.evicted_for_size, report.remaining_entries,
        )
        return report

    def stats(self) -> CacheStats:
        keys = self.keys()
        created = [e.created_at for e in (self._read(k) for k in keys) if e is not None]
        with self._lock:
            return CacheStats(
                total_entries=len(keys),
                total_size_bytes=sum(self.entry_size(k) for k in keys),
                hits=self._hits,
                misses=self._misses,
                stores=self._stores,
                invalidations=self._invalidations,
                corrupt_reads=self._corrupt_reads,
                oldest_entry=min(created) if created else None,
                newest_entry=max(created) if created else None,
            )

    def list_entries(self) -> list[CacheEntry]:
        """All readable entries, corrupt ones skipped."""
        return [e for e in (self._read(k) for k in self.keys()) if e is not None]

    # --- Internals ---

    def _verified_get(self, key: str) -> CacheEntry | None:
        entry = self.get(key)
        if entry is None:
            return None
        if entry.integrity != compute_integrity(entry):
            raise CacheCorruption(key, "integrity hash mismatch")
        return entry

    def _read(self, key: str) -> CacheEntry | None:
        """Get with corruption reported as a miss."""
        try:
            return self._verified_get(key)
        except CacheCorruption as e:
            with self._lock:
                self._corrupt_reads += 1
            logger.warning("Treating corrupt cache entry as a miss: %s", e.message)
            return None

    def _fresh_entry(self, key: str, operation: str) -> CacheEntry | None:
        entry = self._read(key)
        if entry is None:
            return None
        if entry.fingerprint != key or entry.operation != operation:
            return None
        if not self._is_fresh(entry, operation, self._clock()):
            return None
        return entry

    def _is_fresh(self, entry: CacheEntry, operation: str, now: datetime) -> bool:
        window = min(entry.freshness_window_s, self.policy.window(operation))
        return now - entry.created_at < timedelta(seconds=window)

    def _count_invalidations(self, n: int) -> None:
        with self._lock:
            self._invalidations += n
