# src/cache/sqlite_store.py - v3
"""SQLite-based cache store (WEAVER_CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 in WAL mode. Each thread gets its own connection;
project and operation are indexed columns so invalidation is a single DELETE.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from pydantic import ValidationError

from weaverkit.cache.base_cache_store import BaseCacheStore, Clock, FreshnessPolicy
from weaverkit.cache.models import CacheEntry
from weaverkit.core.errors import CacheCorruption

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    project TEXT NOT NULL,
    operation TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_project ON cache_entries(project);
CREATE INDEX IF NOT EXISTS idx_operation ON cache_entries(operation);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store for better performance at scale."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        policy: FreshnessPolicy | None = None,
        max_size_bytes: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(policy=policy, max_size_bytes=max_size_bytes, clock=clock)
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._conn_lock = threading.Lock()
        self._conn().executescript(_SCHEMA)

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
            with self._conn_lock:
                self._connections.append(conn)
        return conn

    def get(self, key: str) -> CacheEntry | None:
        try:
            row = self._conn().execute(
                "SELECT data FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheCorruption(key, f"unreadable: {e}") from e
        if row is None:
            return None
        try:
            return CacheEntry.model_validate_json(row[0])
        except ValidationError as e:
            raise CacheCorruption(key, f"invalid stored entry ({e.error_count()} errors)") from e

    def put(self, key: str, entry: CacheEntry) -> None:
        conn = self._conn()
        with conn:
            conn.execute(
                """INSERT OR REPLACE INTO cache_entries
                   (key, project, operation, data, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    key,
                    entry.project,
                    entry.operation,
                    entry.model_dump_json(),
                    entry.created_at.isoformat(),
                ),
            )

    def delete(self, key: str) -> bool:
        conn = self._conn()
        with conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        rows = self._conn().execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def entry_size(self, key: str) -> int:
        row = self._conn().execute(
            "SELECT length(data) FROM cache_entries WHERE key = ?", (key,)
        ).fetchone()
        return int(row[0]) if row else 0

    def invalidate(self, project: str | None = None, operation: str | None = None) -> int:
        clauses: list[str] = []
        params: list[str] = []
        if project is not None:
            clauses.append("project = ?")
            params.append(project)
        if operation is not None:
            clauses.append("operation = ?")
            params.append(operation)
        sql = "DELETE FROM cache_entries"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        conn = self._conn()
        with conn:
            removed = conn.execute(sql, params).rowcount
        self._count_invalidations(removed)
        logger.info(
            "Invalidated %d cache entries (project=%s, operation=%s)",
            removed, project or "*", operation or "*",
        )
        return removed

    def close(self) -> None:
        with self._conn_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
