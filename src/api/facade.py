# src/api/facade.py - v2
"""Public API facade: single entry point for build tool integrations.

Usage:
    from weaverkit.api.facade import execute
    result = execute(request, workspace, project)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from weaverkit.api.models import ConfigDocument, ExecutorRequest, ExecutorResult
from weaverkit.config.models import (
    ProjectConfig,
    WorkspaceConfig,
    merge_config,
    validate_config,
)
from weaverkit.config.settings import Settings, load_settings
from weaverkit.core.errors import ConfigurationError
from weaverkit.orchestrator.models import OperationOutcome, OperationRequest

if TYPE_CHECKING:
    from weaverkit.cache.base_cache_store import BaseCacheStore
    from weaverkit.execution.runner import CommandRunner
    from weaverkit.executable.manager import ExecutableManager

logger = logging.getLogger(__name__)


def execute(
    request: ExecutorRequest,
    workspace: WorkspaceConfig,
    project: ProjectConfig,
    settings: Settings | None = None,
    cache_store: BaseCacheStore | None = None,
    executable_manager: ExecutableManager | None = None,
    runner: CommandRunner | None = None,
) -> ExecutorResult:
    """Merge configuration, run the operation and flatten its outcome.

    Collaborators not passed in are created from ``settings`` and closed
    before returning.

    Args:
        request: Operation, project and flags.
        workspace: Workspace-wide defaults.
        project: Project overrides.
        settings: Process settings. Loaded from the environment if None.
        cache_store: Result cache. Created from settings if None.
        executable_manager: Executable store. Created from settings if None.
        runner: Subprocess runner. Default runner if None.

    Returns:
        ExecutorResult with success flag, output and error text.
    """
    try:
        settings = settings or load_settings()
        config = merge_config(
            workspace, project,
            project_name=request.project, project_root=request.project_root,
        )
    except ConfigurationError as e:
        logger.error("Configuration error for %s: %s", request.project, e.message)
        return ExecutorResult(success=False, error=e.describe())
    except ValidationError as e:
        logger.error("Invalid settings: %s", e)
        return ExecutorResult(success=False, error=f"Invalid settings: {e}")

    validation = validate_config(config)
    for warning in validation.warnings:
        logger.warning("%s: %s", request.project, warning)
    if not validation.is_valid:
        return ExecutorResult(
            success=False,
            error="Configuration validation failed:\n" + "\n".join(
                f"  - {e}" for e in validation.errors
            ),
        )

    from weaverkit.cache.cache_factory import create_cache_store
    from weaverkit.executable.manager import ExecutableManager
    from weaverkit.orchestrator.operation_orchestrator import OperationOrchestrator

    own_cache = cache_store is None
    own_manager = executable_manager is None
    cache_store = cache_store or create_cache_store(settings)
    executable_manager = executable_manager or ExecutableManager(settings)

    try:
        orchestrator = OperationOrchestrator(cache_store, executable_manager, runner, settings)
        outcome = orchestrator.run(
            OperationRequest(
                operation=request.operation,
                project=request.project,
                dry_run=request.dry_run,
                force=request.force,
                verbose=request.verbose,
                options=request.options,
                timeout_s=request.timeout_s,
            ),
            config,
        )
    finally:
        if own_manager:
            executable_manager.close()
        if own_cache:
            cache_store.close()

    return to_executor_result(outcome, verbose=request.verbose)


def to_executor_result(outcome: OperationOutcome, *, verbose: bool = False) -> ExecutorResult:
    """Flatten an orchestration outcome for callers that only need text."""
    lines: list[str] = []
    if verbose and outcome.command:
        lines.append("Executing: " + " ".join(outcome.command))
    if outcome.description:
        lines.append(outcome.description)
    if outcome.result is not None and outcome.result.output:
        lines.append(outcome.result.output.rstrip("\n"))
    if outcome.from_cache:
        lines.append(f"(cached result for fingerprint {outcome.fingerprint[:12]})")

    error = None
    if not outcome.success:
        error = outcome.error or f"{outcome.operation} failed"
        if outcome.suggestions:
            error += "\n\nSuggestions:\n" + "\n".join(f"  - {s}" for s in outcome.suggestions)

    return ExecutorResult(
        success=outcome.success,
        output="\n".join(lines),
        error=error,
        from_cache=outcome.from_cache,
        skipped=outcome.skipped,
        fingerprint=outcome.fingerprint,
    )


def load_config_document(path: Path | str) -> ConfigDocument:
    """Read an explicit JSON configuration file with workspace and project sections.

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    path = Path(path)
    try:
        return ConfigDocument.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration file {path}: {e.error_count()} errors",
            suggestions=[str(err["loc"]) + ": " + err["msg"] for err in e.errors()],
        ) from e
