# tests/integration/conftest.py - v1
"""Shared fixtures for integration tests.

The release host is simulated with httpx.MockTransport; executables and the
subprocess runner are real.
"""

from __future__ import annotations

import hashlib
import threading
from collections import Counter

import httpx
import pytest

from weaverkit.executable.manager import ExecutableManager

FAKE_BINARY = b"#!/bin/sh\necho weaver\n"


class FakeReleaseServer:
    """In-memory release host serving one artifact per version plus its checksum.

    ``script`` queues status codes (or exceptions) for artifact requests before
    the real body is served. ``gate`` blocks artifact responses until set.
    """

    def __init__(self) -> None:
        self.artifacts: dict[str, bytes] = {}
        self.checksums: dict[str, str] = {}
        self.script: list[int | Exception] = []
        self.requests: list[str] = []
        self.artifact_requests: Counter[str] = Counter()
        self.gate = threading.Event()
        self.gate.set()
        self._lock = threading.Lock()

    def publish(self, version: str, content: bytes = FAKE_BINARY, checksum: str | None = None) -> None:
        self.artifacts[version] = content
        self.checksums[version] = checksum or hashlib.sha256(content).hexdigest()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        version = path.split("/")[1].lstrip("v")
        with self._lock:
            self.requests.append(path)

        if path.endswith(".sha256"):
            if version not in self.checksums:
                return httpx.Response(404)
            return httpx.Response(200, text=f"{self.checksums[version]}  weaver\n")

        with self._lock:
            self.artifact_requests[version] += 1
            step = self.script.pop(0) if self.script else None
        if isinstance(step, Exception):
            raise step
        if step is not None:
            return httpx.Response(step)

        self.gate.wait(timeout=10)
        if version not in self.artifacts:
            return httpx.Response(404)
        return httpx.Response(200, content=self.artifacts[version])


@pytest.fixture
def release_server() -> FakeReleaseServer:
    server = FakeReleaseServer()
    yield server
    server.gate.set()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_manager(settings, release_server, linux_x64, clock, sleeps):
    """Factory for ExecutableManager wired to the fake release host."""
    managers: list[ExecutableManager] = []

    def _make(**overrides) -> ExecutableManager:
        s = settings.model_copy(update=overrides) if overrides else settings
        client = httpx.Client(transport=httpx.MockTransport(release_server.handler))
        manager = ExecutableManager(
            s, client=client, platform=linux_x64, clock=clock, sleep=sleeps.append,
        )
        managers.append(manager)
        return manager

    yield _make
    release_server.gate.set()
    for manager in managers:
        manager.close()
