# src/orchestrator/models.py - v1
"""Requests, states and outcomes of orchestrated operations."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from weaverkit.cache.models import OperationResult


class OperationState(str, Enum):
    FINGERPRINTING = "fingerprinting"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    RESOLVING_EXECUTABLE = "resolving_executable"
    EXECUTING = "executing"
    STORING = "storing"
    DONE = "done"
    ERROR = "error"


class OperationRequest(BaseModel):
    """One operation on one project, as asked for by the caller."""

    operation: str
    project: str
    dry_run: bool = False
    force: bool = False
    verbose: bool = False
    options: dict[str, Any] = Field(default_factory=dict)
    timeout_s: float | None = None


class OperationOutcome(BaseModel):
    """Terminal result of one orchestrated run."""

    operation: str
    project: str
    success: bool
    states: list[OperationState] = Field(default_factory=list)
    result: OperationResult | None = None
    fingerprint: str | None = None
    skipped: bool = False
    dry_run: bool = False
    description: str | None = None
    command: list[str] | None = None
    error: str | None = None
    error_code: str | None = None
    suggestions: list[str] = Field(default_factory=list)

    @property
    def state(self) -> OperationState | None:
        return self.states[-1] if self.states else None

    @property
    def from_cache(self) -> bool:
        return self.result is not None and self.result.from_cache
