# src/api/models.py - v2
"""API-level models: ExecutorRequest, ExecutorResult, ConfigDocument."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from weaverkit.config.models import ProjectConfig, WorkspaceConfig


class ExecutorRequest(BaseModel):
    """What a build orchestrator asks for: one operation on one project."""

    operation: str
    project: str
    project_root: Path
    dry_run: bool = False
    verbose: bool = False
    force: bool = False
    options: dict[str, Any] = Field(default_factory=dict)
    timeout_s: float | None = None


class ExecutorResult(BaseModel):
    """Return value of facade.execute()."""

    success: bool
    output: str = ""
    error: str | None = None
    from_cache: bool = False
    skipped: bool = False
    fingerprint: str | None = None


class ConfigDocument(BaseModel):
    """A workspace section and a project section read from one JSON file."""

    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    project: ProjectConfig = Field(default_factory=ProjectConfig)
