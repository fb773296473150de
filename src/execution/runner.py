# src/execution/runner.py - v2
"""Run one weaver invocation as a subprocess with timeout and cancellation.

The child is launched without a shell. Output is collected with repeated
bounded ``communicate`` calls so the runner can notice an expired timeout or a
cancelled token between slices; in both cases the child is killed and reaped
before the error is raised, and the partial output travels with it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

from weaverkit.core.cancellation import CancellationToken
from weaverkit.core.errors import (
    CommandTimeoutError,
    ExecutionError,
    OperationCancelled,
    OperationTimeoutError,
)

logger = logging.getLogger(__name__)

_POLL_SLICE_S = 0.1


@dataclass
class CommandInvocation:
    """Everything needed to launch the tool once."""

    operation: str
    executable: Path
    args: list[str] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    cwd: Path | None = None
    timeout_s: float = 30.0

    @property
    def argv(self) -> list[str]:
        return [str(self.executable), *self.args]


@dataclass
class CommandResult:
    success: bool
    stdout: str
    stderr: str
    exit_code: int | None
    duration_ms: int
    error: str | None = None
    timed_out: bool = False


class CommandRunner:
    """Synchronous subprocess runner. Never retries."""

    def run(
        self,
        invocation: CommandInvocation,
        *,
        token: CancellationToken | None = None,
    ) -> CommandResult:
        """Execute ``invocation`` and wait for it to finish.

        Raises:
            ExecutionError: If the process cannot be started.
            CommandTimeoutError: If ``invocation.timeout_s`` elapses.
            OperationCancelled: If ``token`` is cancelled.
            OperationTimeoutError: If ``token``'s deadline passes first.
        """
        token = token or CancellationToken.none()
        token.raise_if_fired(invocation.operation)

        env = {**os.environ, **invocation.environment}
        logger.debug("Executing: %s", " ".join(invocation.argv))
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                invocation.argv,
                cwd=str(invocation.cwd) if invocation.cwd else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ExecutionError(
                f"Failed to launch {invocation.executable}: {e}",
                operation=invocation.operation,
            ) from e

        deadline = start + invocation.timeout_s
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_SLICE_S)
                break
            except subprocess.TimeoutExpired:
                pass

            if token.cancelled or token.expired:
                stdout, stderr = _kill(proc)
                elapsed = _elapsed_ms(start)
                logger.warning("%s interrupted after %dms", invocation.operation, elapsed)
                if token.cancelled:
                    raise OperationCancelled(
                        f"{invocation.operation} cancelled", stdout=stdout, stderr=stderr,
                    )
                raise OperationTimeoutError(
                    f"{invocation.operation} exceeded the operation deadline",
                    stdout=stdout, stderr=stderr,
                )

            if time.monotonic() >= deadline:
                stdout, stderr = _kill(proc)
                elapsed = _elapsed_ms(start)
                logger.warning(
                    "%s timed out after %gs and was killed", invocation.operation, invocation.timeout_s
                )
                raise CommandTimeoutError(
                    invocation.operation,
                    invocation.timeout_s,
                    stdout=stdout,
                    stderr=stderr,
                    duration_ms=elapsed,
                )

        duration_ms = _elapsed_ms(start)
        exit_code = proc.returncode
        if exit_code == 0:
            logger.debug("%s completed in %dms", invocation.operation, duration_ms)
            return CommandResult(
                success=True, stdout=stdout, stderr=stderr,
                exit_code=0, duration_ms=duration_ms,
            )

        logger.info("%s exited with status %d", invocation.operation, exit_code)
        return CommandResult(
            success=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
            error=stderr.strip() or f"{invocation.operation} exited with status {exit_code}",
        )


def _kill(proc: subprocess.Popen[str]) -> tuple[str, str]:
    """Kill the child and collect whatever it wrote."""
    proc.kill()
    stdout, stderr = proc.communicate()
    return stdout or "", stderr or ""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
