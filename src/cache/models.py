# src/cache/models.py - v2
"""Cache domain models: Fingerprint, OperationResult, CacheEntry, CacheStats."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field


class Fingerprint(BaseModel):
    """Deterministic identity of one unit of cacheable work."""

    digest: str
    operation: str
    project: str
    tool_version: str
    config_hash: str
    file_hashes: dict[str, str] = Field(default_factory=dict)

    def __str__(self) -> str:
        return self.digest

    @property
    def short(self) -> str:
        return self.digest[:12]


class ValidationSummary(BaseModel):
    """Errors and warnings reported by a validate run."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Serializable projection of a tool invocation, as stored in the cache."""

    success: bool
    output: str = ""
    error: str | None = None
    exit_code: int | None = None
    duration_ms: int = 0
    files_generated: list[str] = Field(default_factory=list)
    files_modified: list[str] = Field(default_factory=list)
    files_deleted: list[str] = Field(default_factory=list)
    validation: ValidationSummary | None = None
    from_cache: bool = False
    fingerprint: str | None = None


class CacheEntry(BaseModel):
    """Single cache entry linking a fingerprint to an operation result."""

    fingerprint: str
    project: str
    operation: str
    result: OperationResult
    created_at: datetime
    freshness_window_s: float
    file_hashes: dict[str, str] = Field(default_factory=dict)
    config_hash: str = ""
    tool_version: str = ""
    integrity: str = ""

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(seconds=self.freshness_window_s)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + self.freshness_window


class CacheStats(BaseModel):
    """Usage statistics for a cache store."""

    total_entries: int = 0
    total_size_bytes: int = 0
    hits: int = 0
    misses: int = 0
    stores: int = 0
    invalidations: int = 0
    corrupt_reads: int = 0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class CompactionReport(BaseModel):
    """What a compaction pass removed."""

    expired: int = 0
    corrupt: int = 0
    evicted_for_size: int = 0
    remaining_entries: int = 0
    remaining_size_bytes: int = 0
