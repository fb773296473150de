# src/executable/singleflight.py - v1
"""Collapse concurrent requests for the same key onto one execution.

The first caller for a key becomes the leader and schedules the work on an
executor; later callers receive the same Future. The key is released before
the Future completes, so a caller arriving after completion starts fresh.
Waiters that give up do not cancel the shared work.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Singleflight(Generic[T]):
    """At most one in-flight call per key."""

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="singleflight")
        self._lock = threading.Lock()
        self._inflight: dict[str, Future[T]] = {}

    def submit(self, key: str, fn: Callable[[], T]) -> Future[T]:
        """Join the in-flight call for ``key`` or start a new one."""
        with self._lock:
            future = self._inflight.get(key)
            if future is not None:
                logger.debug("Joining in-flight call for %s", key)
                return future
            future = Future()
            self._inflight[key] = future

        try:
            self._executor.submit(self._run, key, future, fn)
        except RuntimeError as e:
            self._release(key)
            future.set_exception(e)
        return future

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._inflight

    def _run(self, key: str, future: Future[T], fn: Callable[[], T]) -> None:
        try:
            value = fn()
        except Exception as e:
            self._release(key)
            future.set_exception(e)
        else:
            self._release(key)
            future.set_result(value)

    def _release(self, key: str) -> None:
        with self._lock:
            self._inflight.pop(key, None)
