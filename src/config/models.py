# src/config/models.py - v1
"""Workspace and project configuration, and their explicit merge.

The thin executor layer discovers and loads these documents; this module only
defines their shape and the total merge into a ResolvedConfig.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from weaverkit.core.errors import ConfigurationError

SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.-]+)?(\+[a-zA-Z0-9.-]+)?$")
ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_SCHEMA_DIRECTORY = "weaver/"
DEFAULT_OUTPUT_DIRECTORY = "dist/weaver/"


class WorkspaceConfig(BaseModel):
    """Workspace-wide defaults."""

    default_version: str | None = None
    default_args: dict[str, list[str]] = Field(default_factory=dict)
    default_environment: dict[str, str] = Field(default_factory=dict)
    schema_directory: str = DEFAULT_SCHEMA_DIRECTORY
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    enabled_by_default: bool = True


class ProjectConfig(BaseModel):
    """Per-project settings. ``None`` means "inherit from the workspace"."""

    enabled: bool | None = None
    version: str | None = None
    args: dict[str, list[str]] = Field(default_factory=dict)
    environment: dict[str, str] = Field(default_factory=dict)
    schema_directory: str | None = None
    output_directory: str | None = None
    skip_validation: bool = False
    skip_generation: bool = False
    skip_docs: bool = False


class ResolvedConfig(BaseModel):
    """Fully populated configuration for one project."""

    project: str
    project_root: Path
    enabled: bool
    version: str
    args: dict[str, list[str]]
    environment: dict[str, str]
    schema_directory: Path
    output_directory: Path
    skip_validation: bool = False
    skip_generation: bool = False
    skip_docs: bool = False

    def args_for(self, operation: str) -> list[str]:
        return list(self.args.get(operation, []))

    def is_skipped(self, operation: str) -> bool:
        """Whether the project opted out of ``operation``."""
        if not self.enabled:
            return True
        return {
            "validate": self.skip_validation,
            "generate": self.skip_generation,
            "docs": self.skip_docs,
        }.get(operation, False)

    def fingerprint_payload(self) -> dict[str, Any]:
        """Fields that influence tool output, with paths relative to the project."""
        return {
            "project": self.project,
            "version": self.version,
            "args": {op: list(a) for op, a in sorted(self.args.items())},
            "environment": dict(sorted(self.environment.items())),
            "schema_directory": _relative(self.schema_directory, self.project_root),
            "output_directory": _relative(self.output_directory, self.project_root),
        }


class ConfigValidation(BaseModel):
    """Outcome of validate_config()."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def merge_config(
    workspace: WorkspaceConfig,
    project: ProjectConfig,
    *,
    project_name: str,
    project_root: Path | str,
) -> ResolvedConfig:
    """Merge workspace defaults with project overrides.

    Precedence is project over workspace for every field. Argument lists are
    merged per operation (a project list replaces the workspace list for that
    operation); environment maps are merged key by key.

    Raises:
        ConfigurationError: If no tool version is configured anywhere.
    """
    if not project_name:
        raise ConfigurationError("Project name is required")

    version = project.version or workspace.default_version
    if not version:
        raise ConfigurationError(
            f"No tool version configured for project {project_name!r}",
            suggestions=["Set default_version in the workspace or version in the project"],
        )

    root = Path(project_root)
    args = {op: list(a) for op, a in workspace.default_args.items()}
    args.update({op: list(a) for op, a in project.args.items()})

    environment = dict(workspace.default_environment)
    environment.update(project.environment)

    schema_dir = project.schema_directory or workspace.schema_directory
    output_dir = project.output_directory or workspace.output_directory

    return ResolvedConfig(
        project=project_name,
        project_root=root,
        enabled=workspace.enabled_by_default if project.enabled is None else project.enabled,
        version=version,
        args=args,
        environment=environment,
        schema_directory=root / schema_dir,
        output_directory=root / output_dir,
        skip_validation=project.skip_validation,
        skip_generation=project.skip_generation,
        skip_docs=project.skip_docs,
    )


def validate_config(config: ResolvedConfig) -> ConfigValidation:
    """Check a resolved configuration for errors and warnings."""
    result = ConfigValidation()

    if not SEMVER_RE.match(config.version):
        result.errors.append(f"Invalid version format: {config.version}")

    for name in config.environment:
        if not ENV_NAME_RE.match(name):
            result.errors.append(f"Invalid environment variable name: {name!r}")

    for operation, values in config.args.items():
        if not operation:
            result.errors.append("Argument list keyed by an empty operation name")
        if any(not v.strip() for v in values):
            result.warnings.append(f"Empty argument in args[{operation!r}]")

    if not config.schema_directory.is_dir():
        result.warnings.append(f"Schema directory does not exist: {config.schema_directory}")

    if not config.output_directory.parent.exists():
        result.warnings.append(
            f"Output directory parent does not exist: {config.output_directory.parent}"
        )

    return result


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
