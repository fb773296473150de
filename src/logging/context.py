# src/logging/context.py - v2
"""Contextual logging support: attach project, operation, fingerprint and step to log records.

Context is held in contextvars, so each worker thread of a batch run carries
its own values.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

_project: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "project", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)

_VARS = {
    "project": _project,
    "operation": _operation,
    "fingerprint": _fingerprint,
    "step": _step,
}


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    project: str | None = None
    operation: str | None = None
    fingerprint: str | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        project=_project.get(),
        operation=_operation.get(),
        fingerprint=_fingerprint.get(),
        step=_step.get(),
    )


def set_operation_context(project: str, operation: str) -> None:
    """Set operation-level context (called once per orchestrated run)."""
    _project.set(project)
    _operation.set(operation)
    _fingerprint.set(None)
    _step.set(None)


def set_step(step: str | None, fingerprint: str | None = None) -> None:
    """Record the current state machine step, and the fingerprint once known."""
    _step.set(step)
    if fingerprint is not None:
        _fingerprint.set(fingerprint)


@contextmanager
def log_context(**values: str | None) -> Iterator[None]:
    """Temporarily set context variables, restoring previous values on exit."""
    unknown = set(values) - set(_VARS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
    tokens = [(_VARS[name], _VARS[name].set(value)) for name, value in values.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    for var in _VARS.values():
        var.set(None)
