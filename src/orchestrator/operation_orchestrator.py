# src/orchestrator/operation_orchestrator.py - v1
"""Fingerprint-gated execution of weaver operations.

State machine per run::

    FINGERPRINTING -> CACHE_CHECK -> CACHE_HIT -> DONE
                                  -> RESOLVING_EXECUTABLE -> EXECUTING -> STORING -> DONE

ERROR is reachable from every state before DONE. Components below the
orchestrator raise; this module is where errors become outcomes.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from weaverkit.cache.base_cache_store import BaseCacheStore
from weaverkit.cache.fingerprint import build_fingerprint, collect_input_files
from weaverkit.cache.models import Fingerprint, OperationResult
from weaverkit.config.models import ResolvedConfig
from weaverkit.config.settings import Settings
from weaverkit.core.cancellation import CancellationToken
from weaverkit.core.errors import CommandTimeoutError, InputUnreadable, WeaverError
from weaverkit.execution.commands import build_command_args
from weaverkit.execution.output_parser import parse_output
from weaverkit.execution.runner import CommandInvocation, CommandResult, CommandRunner
from weaverkit.executable.manager import ExecutableManager
from weaverkit.logging.context import log_context, set_step
from weaverkit.orchestrator.models import OperationOutcome, OperationRequest, OperationState

logger = logging.getLogger(__name__)

CLEAN = "clean"


@dataclass
class _Trace:
    """Visited states and the fingerprint of one run."""

    states: list[OperationState] = field(default_factory=list)
    fingerprint: Fingerprint | None = None

    def enter(self, state: OperationState) -> None:
        self.states.append(state)
        set_step(state.value, self.fingerprint.short if self.fingerprint else None)
        logger.debug("-> %s", state.value)

    @property
    def digest(self) -> str | None:
        return self.fingerprint.digest if self.fingerprint else None


class OperationOrchestrator:
    """Runs operations through cache, executable resolution and execution."""

    def __init__(
        self,
        cache_store: BaseCacheStore,
        executable_manager: ExecutableManager,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._cache = cache_store
        self._executables = executable_manager
        self._runner = runner or CommandRunner()
        self._settings = settings or Settings()

    def run(self, request: OperationRequest, config: ResolvedConfig) -> OperationOutcome:
        """Run one operation to a terminal state. Never raises WeaverError."""
        trace = _Trace()
        with log_context(project=config.project, operation=request.operation,
                         fingerprint=None, step=None):
            try:
                return self._run(request, config, trace)
            except WeaverError as e:
                trace.enter(OperationState.ERROR)
                logger.error("%s failed for %s: %s", request.operation, config.project, e.message)
                return self._error_outcome(request, config, trace, e)

    def run_many(
        self,
        items: Iterable[tuple[OperationRequest, ResolvedConfig]],
        *,
        max_workers: int | None = None,
    ) -> list[OperationOutcome]:
        """Run independent operations in parallel, preserving input order."""
        items = list(items)
        if not items:
            return []
        workers = min(max_workers or self._settings.max_workers, len(items))

        outcomes: list[OperationOutcome] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="weaverkit-op") as pool:
            futures = [pool.submit(self.run, request, config) for request, config in items]
            for (request, config), future in zip(items, futures):
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    logger.exception("Unexpected failure running %s for %s",
                                     request.operation, config.project)
                    outcomes.append(OperationOutcome(
                        operation=request.operation,
                        project=config.project,
                        success=False,
                        states=[OperationState.ERROR],
                        error=str(e),
                        error_code="INTERNAL_ERROR",
                    ))
        return outcomes

    # --- State machine ---

    def _run(
        self, request: OperationRequest, config: ResolvedConfig, trace: _Trace
    ) -> OperationOutcome:
        operation = request.operation

        if config.is_skipped(operation):
            logger.info("Skipping %s for %s (disabled in configuration)", operation, config.project)
            trace.enter(OperationState.DONE)
            return OperationOutcome(
                operation=operation, project=config.project, success=True,
                skipped=True, states=trace.states,
                description=f"{operation} skipped for {config.project}",
            )

        token = CancellationToken(request.timeout_s)
        if operation == CLEAN:
            return self._clean(request, config, trace, token)

        trace.enter(OperationState.FINGERPRINTING)
        trace.fingerprint = self._fingerprint(request, config)
        args = build_command_args(operation, config, options=request.options)

        if request.dry_run:
            trace.enter(OperationState.DONE)
            return OperationOutcome(
                operation=operation, project=config.project, success=True,
                dry_run=True, states=trace.states, fingerprint=trace.digest,
                command=["weaver", *args],
                description=f"Would run: weaver {' '.join(args)}",
            )

        use_cache = self._settings.cache_enabled and trace.fingerprint is not None
        if use_cache and not request.force:
            trace.enter(OperationState.CACHE_CHECK)
            cached = self._cache.lookup(trace.fingerprint, operation)
            if cached is not None:
                trace.enter(OperationState.CACHE_HIT)
                logger.info("Using cached %s result for %s", operation, config.project)
                trace.enter(OperationState.DONE)
                return OperationOutcome(
                    operation=operation, project=config.project, success=cached.success,
                    states=trace.states, result=cached, fingerprint=trace.digest,
                    error=cached.error,
                )

        token.raise_if_fired(operation)
        with self._executables.pin(config.version):
            trace.enter(OperationState.RESOLVING_EXECUTABLE)
            executable = self._executables.resolve_path(config.version, token=token)

            trace.enter(OperationState.EXECUTING)
            invocation = CommandInvocation(
                operation=operation,
                executable=executable,
                args=args,
                environment=dict(config.environment),
                cwd=config.project_root,
                timeout_s=self._settings.command_timeout_s,
            )
            command_result = self._execute(invocation, token)

        result = self._to_result(operation, command_result, trace.digest)

        if use_cache and self._cache.policy.should_store(operation, result):
            trace.enter(OperationState.STORING)
            self._store(trace.fingerprint, operation, result, config.project)

        if result.success:
            trace.enter(OperationState.DONE)
            logger.info("%s succeeded for %s in %dms", operation, config.project, result.duration_ms)
        else:
            trace.enter(OperationState.ERROR)
            logger.error("%s failed for %s: %s", operation, config.project, result.error)

        return OperationOutcome(
            operation=operation, project=config.project, success=result.success,
            states=trace.states, result=result, fingerprint=trace.digest,
            command=invocation.argv, error=result.error,
            error_code=None if result.success else "EXECUTION_ERROR",
        )

    def _fingerprint(self, request: OperationRequest, config: ResolvedConfig) -> Fingerprint | None:
        files = collect_input_files(config.schema_directory)
        try:
            return build_fingerprint(
                request.operation, config, files, options=request.options
            )
        except InputUnreadable as e:
            if self._settings.unreadable_input_policy == "miss":
                logger.warning("%s; running without cache", e.message)
                return None
            raise

    def _execute(self, invocation: CommandInvocation, token: CancellationToken) -> CommandResult:
        """Run the command, re-running idempotent operations after a timeout."""
        attempts = 1
        if invocation.operation in self._settings.idempotent_operations_list:
            attempts = self._settings.execution_max_attempts

        attempt = 1
        while True:
            try:
                return self._runner.run(invocation, token=token)
            except CommandTimeoutError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "%s timed out (attempt %d/%d), retrying",
                    invocation.operation, attempt, attempts,
                )
                attempt += 1

    def _store(
        self, fingerprint: Fingerprint, operation: str, result: OperationResult, project: str
    ) -> None:
        try:
            self._cache.store(fingerprint, operation, result, project=project)
        except (OSError, sqlite3.Error) as e:
            logger.warning("Could not store %s result in cache: %s", operation, e)

    @staticmethod
    def _to_result(operation: str, command: CommandResult, digest: str | None) -> OperationResult:
        parsed = parse_output(operation, command.stdout)
        validation = parsed.validation
        if validation is not None and not command.success and validation.valid:
            validation = validation.model_copy(update={
                "valid": False,
                "errors": validation.errors or [command.error or "validation failed"],
            })
        return OperationResult(
            success=command.success,
            output=command.stdout,
            error=command.error,
            exit_code=command.exit_code,
            duration_ms=command.duration_ms,
            files_generated=parsed.files_generated,
            files_deleted=parsed.files_deleted,
            validation=validation,
            fingerprint=digest,
        )

    # --- clean ---

    def _clean(
        self,
        request: OperationRequest,
        config: ResolvedConfig,
        trace: _Trace,
        token: CancellationToken,
    ) -> OperationOutcome:
        """Remove generated files and the project's cache entries. Never cached."""
        trace.enter(OperationState.EXECUTING)
        output_dir = config.output_directory
        files = sorted(p for p in output_dir.rglob("*") if p.is_file()) if output_dir.is_dir() else []
        names = [_relative(p, config.project_root) for p in files]

        if request.dry_run:
            trace.enter(OperationState.DONE)
            return OperationOutcome(
                operation=CLEAN, project=config.project, success=True, dry_run=True,
                states=trace.states,
                description=f"Would remove {len(files)} files from {output_dir}",
                result=OperationResult(
                    success=True,
                    output="\n".join(f"Would remove: '{n}'" for n in names),
                ),
            )

        for path in files:
            token.raise_if_fired(CLEAN)
            path.unlink(missing_ok=True)
        if output_dir.is_dir():
            for directory in sorted(
                (d for d in output_dir.rglob("*") if d.is_dir()),
                key=lambda d: len(d.parts), reverse=True,
            ):
                if not any(directory.iterdir()):
                    directory.rmdir()

        invalidated = 0
        if self._settings.cache_enabled:
            invalidated = self._cache.invalidate(project=config.project)

        output = "\n".join(f"Removed: '{n}'" for n in names)
        parsed = parse_output(CLEAN, output)
        logger.info(
            "Cleaned %d files and %d cache entries for %s", len(files), invalidated, config.project
        )
        trace.enter(OperationState.DONE)
        return OperationOutcome(
            operation=CLEAN, project=config.project, success=True, states=trace.states,
            result=OperationResult(success=True, output=output, files_deleted=parsed.files_deleted),
            description=f"Removed {len(files)} files and {invalidated} cache entries",
        )

    # --- errors ---

    @staticmethod
    def _error_outcome(
        request: OperationRequest,
        config: ResolvedConfig,
        trace: _Trace,
        error: WeaverError,
    ) -> OperationOutcome:
        result = None
        stdout = getattr(error, "stdout", "") or getattr(error, "output", "")
        stderr = getattr(error, "stderr", "")
        if stdout or stderr:
            result = OperationResult(
                success=False,
                output=stdout,
                error=stderr or error.message,
                exit_code=getattr(error, "exit_code", None),
                duration_ms=getattr(error, "duration_ms", 0),
                fingerprint=trace.digest,
            )
        message = error.message
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        return OperationOutcome(
            operation=request.operation,
            project=config.project,
            success=False,
            states=trace.states,
            result=result,
            fingerprint=trace.digest,
            error=message,
            error_code=error.code,
            suggestions=error.suggestions,
        )


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
