# tests/conftest.py - v2
"""Shared test fixtures for all unit and integration tests.

Provides settings rooted in tmp_path, a sample project with schema files, a
controllable clock, and fake executable manager / command runner doubles.
No network access: HTTP goes through httpx.MockTransport in the tests that
need it.
"""

from __future__ import annotations

import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from weaverkit.config.models import ProjectConfig, WorkspaceConfig, merge_config
from weaverkit.config.settings import Settings
from weaverkit.execution.runner import CommandResult
from weaverkit.executable.platforms import PlatformCoordinate

TOOL_VERSION = "0.13.2"
LINUX_X64 = PlatformCoordinate(system="linux", machine="x86_64", target="x86_64-unknown-linux-gnu")


# === Time ===


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# === Settings and configuration ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        cache_root=tmp_path / "cache",
        executable_root=tmp_path / "bin",
        download_url="https://downloads.test/v{version}/weaver-{platform}",
        hash_url="https://downloads.test/v{version}/weaver-{platform}.sha256",
        retry_base_delay_s=0.0,
        retry_max_delay_s=0.0,
        command_timeout_s=10.0,
    )


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects" / "api"
    schemas = root / "weaver"
    schemas.mkdir(parents=True)
    (schemas / "registry.yaml").write_text(
        "groups:\n  - id: http\n    type: span\n", encoding="utf-8"
    )
    (schemas / "attributes").mkdir()
    (schemas / "attributes" / "http.yaml").write_text(
        "attributes:\n  - id: http.method\n", encoding="utf-8"
    )
    (schemas / "README.md").write_text("not a schema\n", encoding="utf-8")
    return root


@pytest.fixture
def workspace_config() -> WorkspaceConfig:
    return WorkspaceConfig(
        default_version=TOOL_VERSION,
        default_args={"validate": ["--future"], "generate": ["--templates", "templates"]},
        default_environment={"RUST_LOG": "info"},
    )


@pytest.fixture
def resolved_config(workspace_config, project_root):
    return merge_config(
        workspace_config,
        ProjectConfig(environment={"WEAVER_PROFILE": "ci"}),
        project_name="api",
        project_root=project_root,
    )


# === Test doubles ===


class FakeExecutableManager:
    """Stands in for ExecutableManager: records resolutions, never downloads."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or Path(sys.executable)
        self.resolved: list[str] = []
        self.pinned: list[str] = []
        self.error: Exception | None = None
        self._lock = threading.Lock()

    def resolve_path(self, version, *, timeout=None, token=None):
        with self._lock:
            self.resolved.append(version)
        if self.error is not None:
            raise self.error
        return self.path

    @contextmanager
    def pin(self, version):
        with self._lock:
            self.pinned.append(version)
        yield

    def close(self):
        pass


class FakeRunner:
    """Returns queued results (or raises queued errors) in order."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.invocations = []
        self._lock = threading.Lock()

    def run(self, invocation, *, token=None):
        with self._lock:
            self.invocations.append(invocation)
            item = self.results.pop(0) if self.results else ok_result()
        if isinstance(item, Exception):
            raise item
        return item


def ok_result(stdout: str = "", duration_ms: int = 5) -> CommandResult:
    return CommandResult(success=True, stdout=stdout, stderr="", exit_code=0, duration_ms=duration_ms)


def failed_result(stderr: str = "schema error", exit_code: int = 1) -> CommandResult:
    return CommandResult(
        success=False, stdout="", stderr=stderr, exit_code=exit_code,
        duration_ms=5, error=stderr,
    )


@pytest.fixture
def fake_manager() -> FakeExecutableManager:
    return FakeExecutableManager()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_runner():
    """Factory for FakeRunner with queued results."""
    return FakeRunner


@pytest.fixture
def ok():
    return ok_result


@pytest.fixture
def failed():
    return failed_result


@pytest.fixture
def linux_x64() -> PlatformCoordinate:
    return LINUX_X64
