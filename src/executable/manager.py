# src/executable/manager.py - v2
"""Lifecycle of the versioned weaver executable: resolve, install, verify, clean.

Layout per install::

    {executable_root}/{version}/{target}/weaver[.exe]
    {executable_root}/{version}/{target}/record.json

Installs are staged in ``{executable_root}/.tmp/`` and moved into place with
``os.replace``. At most one download per (version, target) is in flight in a
process; every concurrent resolver waits on the same Future and receives the
same path or the same exception.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
import uuid
from collections import Counter
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
from pydantic import ValidationError

from weaverkit.cache.fingerprint import hash_file
from weaverkit.config.models import SEMVER_RE
from weaverkit.config.settings import Settings
from weaverkit.core.cancellation import CancellationToken
from weaverkit.core.errors import (
    DownloadError,
    HashMismatchError,
    InputUnreadable,
    InvalidVersionError,
    OperationTimeoutError,
)
from weaverkit.executable.downloader import ArtifactDownloader, extract_binary
from weaverkit.executable.models import ExecutableRecord
from weaverkit.executable.platforms import PlatformCoordinate, detect_platform, render_template
from weaverkit.executable.singleflight import Singleflight
from weaverkit.storage import layout
from weaverkit.storage.atomic import atomic_write_text

logger = logging.getLogger(__name__)

_WAIT_SLICE_S = 0.1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutableManager:
    """Download, verify and hand out paths to weaver binaries."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.Client | None = None,
        platform: PlatformCoordinate | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._root = Path(settings.executable_root).expanduser()
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=settings.download_timeout_s, follow_redirects=True
        )
        self._platform = platform
        self._clock = clock or _utcnow
        self._downloader = ArtifactDownloader(self._client, settings, sleep=sleep)
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="weaverkit-download")
        self._flight: Singleflight[Path] = Singleflight(self._executor)
        self._pins: Counter[str] = Counter()
        self._pin_lock = threading.Lock()
        self._record_lock = threading.Lock()
        self._active_tmp: set[Path] = set()
        self._tmp_lock = threading.Lock()

    @property
    def platform(self) -> PlatformCoordinate:
        if self._platform is None:
            self._platform = detect_platform()
        return self._platform

    @property
    def root(self) -> Path:
        return self._root

    # --- Resolution ---

    def resolve_path(
        self,
        version: str,
        *,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> Path:
        """Return the path of a verified binary, downloading it if needed.

        Args:
            version: Exact semantic version.
            timeout: Maximum seconds to wait for an in-flight download.
            token: Caller cancellation; also bounds the wait.

        Raises:
            InvalidVersionError: If version is not ``x.y.z``.
            UnsupportedPlatformError: If the host has no release target.
            DownloadError: If the download fails after retries.
            HashMismatchError: If the artifact does not match its checksum.
            OperationTimeoutError: If the wait exceeds ``timeout``.
        """
        _check_version(version)
        coord = self.platform

        if self.validate(version):
            self._touch(version, coord)
            return self._binary_path(version, coord)

        future = self._flight.submit(
            self._key(version, coord), lambda: self._install(version, coord, force=False)
        )
        path = self._await(future, version, timeout, token)
        self._touch(version, coord)
        return path

    def download(self, version: str) -> Path:
        """Fetch and install ``version`` even if a valid copy exists."""
        _check_version(version)
        coord = self.platform
        future = self._flight.submit(
            self._key(version, coord), lambda: self._install(version, coord, force=True)
        )
        return future.result()

    def validate(self, version: str) -> bool:
        """Check that the installed binary exists, is executable and is unmodified."""
        coord = self.platform
        record = self.get_record(version)
        if record is None:
            return False

        path = Path(record.path)
        if not path.is_file():
            logger.warning("Executable for %s missing at %s", version, path)
            return False

        try:
            actual = hash_file(path)
        except InputUnreadable as e:
            logger.warning("Cannot hash executable for %s: %s", version, e.message)
            return False
        if actual != record.content_hash:
            logger.warning(
                "Executable for %s/%s failed integrity check (expected %s, got %s)",
                version, coord.target, record.content_hash[:12], actual[:12],
            )
            return False

        if os.name != "nt" and not os.access(path, os.X_OK):
            logger.warning("Executable for %s is not executable: %s", version, path)
            return False

        return True

    # --- Records ---

    def get_record(self, version: str) -> ExecutableRecord | None:
        path = layout.record_path(self._root, version, self.platform.target)
        return _read_record(path)

    def installed(self) -> list[ExecutableRecord]:
        """All readable install records, across versions and targets."""
        if not self._root.is_dir():
            return []
        records = []
        for path in sorted(self._root.glob(f"*/*/{layout.RECORD_FILE}")):
            if path.parts[-3] == layout.TMP_DIR:
                continue
            record = _read_record(path)
            if record is not None:
                records.append(record)
        return records

    # --- Pinning and cleanup ---

    @contextmanager
    def pin(self, version: str) -> Iterator[None]:
        """Protect ``version`` from cleanup for the duration of the block."""
        key = self._key(version, self.platform)
        with self._pin_lock:
            self._pins[key] += 1
        try:
            yield
        finally:
            with self._pin_lock:
                self._pins[key] -= 1
                if self._pins[key] <= 0:
                    del self._pins[key]

    def is_pinned(self, version: str, target: str) -> bool:
        with self._pin_lock:
            return self._pins.get(f"{version}/{target}", 0) > 0

    def cleanup(self, retention: timedelta | None = None) -> list[ExecutableRecord]:
        """Remove installs unused for longer than ``retention`` and stale downloads.

        Pinned installs and downloads in progress are never touched.
        """
        if retention is None:
            retention = timedelta(days=self._settings.executable_retention_days)
        cutoff = self._clock() - retention
        removed: list[ExecutableRecord] = []

        for record in self.installed():
            if self.is_pinned(record.version, record.platform):
                logger.debug("Skipping pinned executable %s/%s", record.version, record.platform)
                continue
            if record.last_used_at > cutoff:
                continue
            shutil.rmtree(layout.install_dir(self._root, record.version, record.platform))
            version_dir = layout.version_dir(self._root, record.version)
            if version_dir.is_dir() and not any(version_dir.iterdir()):
                version_dir.rmdir()
            removed.append(record)
            logger.info("Removed unused executable %s/%s", record.version, record.platform)

        tmp_root = layout.tmp_dir(self._root)
        if tmp_root.is_dir():
            with self._tmp_lock:
                active = set(self._active_tmp)
            for entry in tmp_root.iterdir():
                if entry not in active:
                    shutil.rmtree(entry, ignore_errors=True)
                    logger.debug("Removed orphaned download %s", entry)

        return removed

    # --- Lifecycle ---

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ExecutableManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Internals ---

    def _install(self, version: str, coord: PlatformCoordinate, *, force: bool) -> Path:
        if not force and self.validate(version):
            return self._binary_path(version, coord)

        variables = coord.template_vars(version)
        url = render_template(self._settings.download_url, variables)
        self._check_disk_space()
        try:
            return self._stage(version, coord, url, variables)
        except OSError as e:
            raise DownloadError(
                f"Cannot install weaver {version} under {self._root}: {e}",
                version=version, url=url, retryable=False,
            ) from e

    def _stage(
        self, version: str, coord: PlatformCoordinate, url: str, variables: dict[str, str]
    ) -> Path:
        staging = layout.tmp_dir(self._root) / uuid.uuid4().hex
        staging.mkdir(parents=True, exist_ok=True)
        with self._tmp_lock:
            self._active_tmp.add(staging)

        try:
            artifact = staging / "artifact"
            logger.info("Downloading weaver %s for %s", version, coord.target)
            attempts = self._downloader.download(url, artifact, version=version)

            artifact_hash = None
            if self._settings.verify_hashes:
                hash_url = render_template(self._settings.hash_url, variables)
                expected = self._downloader.fetch_checksum(hash_url, version=version)
                actual = hash_file(artifact)
                if actual != expected:
                    raise HashMismatchError(
                        f"Checksum mismatch for weaver {version} ({coord.target})",
                        expected=expected,
                        actual=actual,
                    )
                artifact_hash = actual

            binary = extract_binary(
                artifact, staging / "extract", coord.executable_name, source_url=url
            )
            os.chmod(binary, 0o755)
            content_hash = hash_file(binary)
            file_size = binary.stat().st_size

            target = self._binary_path(version, coord)
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(binary, target)

            now = self._clock()
            record = ExecutableRecord(
                version=version,
                platform=coord.target,
                os_name=coord.system,
                architecture=coord.machine,
                path=str(target),
                content_hash=content_hash,
                artifact_hash=artifact_hash,
                download_url=url,
                download_attempts=attempts,
                file_size=file_size,
                downloaded_at=now,
                last_used_at=now,
            )
            self._write_record(record)
            logger.info("Installed weaver %s at %s", version, target)
            return target
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            with self._tmp_lock:
                self._active_tmp.discard(staging)

    def _check_disk_space(self) -> None:
        """Warn when free space under the store is below ``min_disk_space_mb``."""
        required_mb = self._settings.min_disk_space_mb
        if required_mb <= 0:
            return
        existing = self._root
        while not existing.exists() and existing != existing.parent:
            existing = existing.parent
        try:
            free_mb = shutil.disk_usage(existing).free / (1024 * 1024)
        except OSError as e:
            logger.warning("Could not check free disk space under %s: %s", existing, e)
            return
        if free_mb < required_mb:
            logger.warning(
                "Low disk space under %s: %.2fMB free, %dMB recommended",
                existing, free_mb, required_mb,
            )
        else:
            logger.debug("Disk space check passed: %.2fMB free", free_mb)

    def _await(
        self,
        future: Future[Path],
        version: str,
        timeout: float | None,
        token: CancellationToken | None,
    ) -> Path:
        token = token or CancellationToken.none()
        wait = token.bound(timeout)
        deadline = None if wait is None else time.monotonic() + wait

        while True:
            token.raise_if_fired("executable resolution")
            slice_s = _WAIT_SLICE_S
            if deadline is not None:
                left = deadline - time.monotonic()
                if left <= 0:
                    token.raise_if_fired("executable resolution")
                    raise OperationTimeoutError(
                        f"Timed out after {wait:g}s waiting for weaver {version}"
                    )
                slice_s = min(slice_s, left)
            try:
                return future.result(timeout=slice_s)
            except FutureTimeoutError:
                continue

    def _touch(self, version: str, coord: PlatformCoordinate) -> None:
        with self._record_lock:
            record = self.get_record(version)
            if record is None:
                return
            self._write_record(record.model_copy(update={"last_used_at": self._clock()}))

    def _write_record(self, record: ExecutableRecord) -> None:
        path = layout.record_path(self._root, record.version, record.platform)
        atomic_write_text(path, record.model_dump_json(indent=2))

    def _binary_path(self, version: str, coord: PlatformCoordinate) -> Path:
        return layout.executable_path(self._root, version, coord.target, coord.executable_name)

    @staticmethod
    def _key(version: str, coord: PlatformCoordinate) -> str:
        return f"{version}/{coord.target}"


def _check_version(version: str) -> None:
    if not SEMVER_RE.match(version):
        raise InvalidVersionError(version)


def _read_record(path: Path) -> ExecutableRecord | None:
    try:
        return ExecutableRecord.model_validate_json(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable executable record %s: %s", path, e)
        return None
