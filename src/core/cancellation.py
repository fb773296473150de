# src/core/cancellation.py - v1
"""Cancellation token shared by every blocking step of one operation.

A token combines an optional absolute deadline (caller-level timeout) with an
explicit cancel flag. Blocking calls ask the token how long they may still
wait and raise once it has fired.
"""

from __future__ import annotations

import threading
import time

from weaverkit.core.errors import OperationCancelled, OperationTimeoutError


class CancellationToken:
    """Deadline plus manual cancel switch, safe to share across threads."""

    def __init__(self, timeout_s: float | None = None) -> None:
        self._deadline = None if timeout_s is None else time.monotonic() + timeout_s
        self._timeout_s = timeout_s
        self._cancelled = threading.Event()

    @classmethod
    def none(cls) -> CancellationToken:
        """Token that never fires unless cancelled explicitly."""
        return cls(None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def bound(self, timeout_s: float | None) -> float | None:
        """Clamp a step-level timeout to what is left of the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout_s
        if timeout_s is None:
            return remaining
        return min(timeout_s, remaining)

    def raise_if_fired(self, step: str = "operation") -> None:
        if self.cancelled:
            raise OperationCancelled(f"{step} cancelled")
        if self.expired:
            raise OperationTimeoutError(
                f"{step} exceeded the operation timeout of {self._timeout_s:g}s"
            )
