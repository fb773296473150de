# src/executable/downloader.py - v1
"""HTTP fetch of release artifacts with bounded retry, plus archive extraction.

Transient failures (transport errors, HTTP 5xx, 408 and 429) are retried with
exponential backoff; every attempt refetches from scratch. Other client
errors fail immediately.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import time
import zipfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from typing import TypeVar

import httpx

from weaverkit.config.settings import Settings
from weaverkit.core.errors import DownloadError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({408, 429})
TAR_SUFFIXES = (".tar.xz", ".tar.gz", ".tgz", ".tar")

_CHUNK_SIZE = 64 * 1024


def backoff_delay(attempt: int, base_s: float, max_s: float) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2**(attempt-1), capped."""
    return min(base_s * 2 ** (attempt - 1), max_s)


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUS


class ArtifactDownloader:
    """Streams artifacts and checksum files over a shared httpx client."""

    def __init__(
        self,
        client: httpx.Client,
        settings: Settings,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._settings = settings
        self._sleep = sleep

    def download(self, url: str, dest: Path, *, version: str) -> int:
        """Stream ``url`` into ``dest``. Returns the number of attempts used.

        Raises:
            DownloadError: When retries are exhausted or the failure is permanent.
        """
        def fetch() -> None:
            with self._client.stream(
                "GET", url, timeout=self._settings.download_timeout_s, follow_redirects=True
            ) as response:
                response.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(_CHUNK_SIZE):
                        f.write(chunk)

        _, attempts = self._with_retries(fetch, url=url, version=version)
        logger.info("Downloaded %s (%d bytes, %d attempt(s))", url, dest.stat().st_size, attempts)
        return attempts

    def fetch_checksum(self, url: str, *, version: str) -> str:
        """Fetch a published checksum file and return its first token, lowercased."""
        def fetch() -> str:
            response = self._client.get(
                url, timeout=self._settings.download_timeout_s, follow_redirects=True
            )
            response.raise_for_status()
            return response.text

        text, _ = self._with_retries(fetch, url=url, version=version)
        tokens = text.split()
        if not tokens:
            raise DownloadError(
                f"Checksum file at {url} is empty", version=version, url=url, retryable=False
            )
        return tokens[0].lower()

    def _with_retries(self, fn: Callable[[], T], *, url: str, version: str) -> tuple[T, int]:
        max_attempts = self._settings.max_retries
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return fn(), attempt
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if not is_retryable_status(status):
                    raise DownloadError(
                        f"HTTP {status} fetching {url}",
                        version=version, url=url, retryable=False, attempts=attempt,
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e

            if attempt < max_attempts:
                delay = backoff_delay(
                    attempt, self._settings.retry_base_delay_s, self._settings.retry_max_delay_s
                )
                logger.warning(
                    "Attempt %d/%d for %s failed (%s); retrying in %.1fs",
                    attempt, max_attempts, url, last_error, delay,
                )
                self._sleep(delay)

        raise DownloadError(
            f"Failed to fetch {url} after {max_attempts} attempts: {last_error}",
            version=version, url=url, retryable=True, attempts=max_attempts,
        ) from last_error


def extract_binary(artifact: Path, dest_dir: Path, executable_name: str, *, source_url: str) -> Path:
    """Pull the executable out of a downloaded artifact.

    Tar and zip archives are searched for a regular file named
    ``executable_name`` at any depth; anything else is taken as the raw binary.

    Raises:
        DownloadError: If an archive is unreadable or lacks the executable.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = dest_dir / executable_name
    name = PurePosixPath(httpx.URL(source_url).path).name.lower()

    try:
        if name.endswith(TAR_SUFFIXES):
            with tarfile.open(artifact, "r:*") as tar:
                member = next(
                    (m for m in tar.getmembers()
                     if m.isfile() and PurePosixPath(m.name).name == executable_name),
                    None,
                )
                if member is None:
                    raise _missing(executable_name, source_url)
                src = tar.extractfile(member)
                if src is None:
                    raise _missing(executable_name, source_url)
                with src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out, _CHUNK_SIZE)
        elif name.endswith(".zip"):
            with zipfile.ZipFile(artifact) as zf:
                info = next(
                    (i for i in zf.infolist()
                     if not i.is_dir() and PurePosixPath(i.filename).name == executable_name),
                    None,
                )
                if info is None:
                    raise _missing(executable_name, source_url)
                with zf.open(info) as src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out, _CHUNK_SIZE)
        else:
            shutil.copyfile(artifact, target)
    except (tarfile.TarError, zipfile.BadZipFile) as e:
        raise DownloadError(
            f"Cannot extract {source_url}: {e}", url=source_url, retryable=False
        ) from e

    return target


def _missing(executable_name: str, url: str) -> DownloadError:
    return DownloadError(
        f"Archive {url} does not contain {executable_name}", url=url, retryable=False
    )
