# tests/unit/executable/test_unit_downloader.py - v1
"""Tests for executable/downloader.py - retry policy, checksums, extraction."""

from __future__ import annotations

import io
import tarfile
import zipfile

import httpx
import pytest

from weaverkit.core.errors import DownloadError
from weaverkit.executable.downloader import (
    ArtifactDownloader,
    backoff_delay,
    extract_binary,
    is_retryable_status,
)

URL = "https://downloads.test/v1.0.0/weaver-x86_64-unknown-linux-gnu"


def _downloader(settings, handler, delays=None):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    sleep = delays.append if delays is not None else (lambda s: None)
    return ArtifactDownloader(client, settings, sleep=sleep)


class TestBackoff:
    def test_exponential(self):
        assert [backoff_delay(n, 1.0, 10.0) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        assert backoff_delay(6, 1.0, 10.0) == 10.0

    @pytest.mark.parametrize("status,retryable", [
        (500, True), (502, True), (503, True), (408, True), (429, True),
        (400, False), (403, False), (404, False),
    ])
    def test_retryable_status(self, status, retryable):
        assert is_retryable_status(status) is retryable


class TestDownload:
    def test_success_first_attempt(self, settings, tmp_path):
        dl = _downloader(settings, lambda req: httpx.Response(200, content=b"binary"))
        dest = tmp_path / "artifact"
        assert dl.download(URL, dest, version="1.0.0") == 1
        assert dest.read_bytes() == b"binary"

    def test_retries_transient_failures(self, settings, tmp_path):
        settings = settings.model_copy(update={"retry_base_delay_s": 1.0, "retry_max_delay_s": 10.0})
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, content=b"ok")])
        delays: list[float] = []
        dl = _downloader(settings, lambda req: next(responses), delays)

        assert dl.download(URL, tmp_path / "a", version="1.0.0") == 3
        assert delays == [1.0, 2.0]

    def test_transport_error_is_retried(self, settings, tmp_path):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, content=b"ok")

        dl = _downloader(settings, handler)
        assert dl.download(URL, tmp_path / "a", version="1.0.0") == 2

    def test_gives_up_after_max_retries(self, settings, tmp_path):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(500)

        dl = _downloader(settings, handler)
        with pytest.raises(DownloadError) as exc_info:
            dl.download(URL, tmp_path / "a", version="1.0.0")
        assert len(calls) == settings.max_retries
        assert exc_info.value.retryable is True
        assert exc_info.value.attempts == settings.max_retries

    def test_client_error_not_retried(self, settings, tmp_path):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(404)

        dl = _downloader(settings, handler)
        with pytest.raises(DownloadError, match="HTTP 404") as exc_info:
            dl.download(URL, tmp_path / "a", version="1.0.0")
        assert len(calls) == 1
        assert exc_info.value.retryable is False


class TestChecksum:
    def test_first_token(self, settings):
        body = "ABCDEF0123  weaver-x86_64-unknown-linux-gnu.tar.xz\n"
        dl = _downloader(settings, lambda req: httpx.Response(200, text=body))
        assert dl.fetch_checksum(URL + ".sha256", version="1.0.0") == "abcdef0123"

    def test_empty(self, settings):
        dl = _downloader(settings, lambda req: httpx.Response(200, text="  \n"))
        with pytest.raises(DownloadError, match="empty"):
            dl.fetch_checksum(URL + ".sha256", version="1.0.0")


class TestExtractBinary:
    def test_raw_binary(self, tmp_path):
        artifact = tmp_path / "artifact"
        artifact.write_bytes(b"\x7fELF")
        out = extract_binary(artifact, tmp_path / "x", "weaver", source_url=URL)
        assert out.name == "weaver"
        assert out.read_bytes() == b"\x7fELF"

    @pytest.mark.parametrize("suffix,mode", [(".tar.gz", "w:gz"), (".tar.xz", "w:xz")])
    def test_tar_archives(self, tmp_path, suffix, mode):
        artifact = tmp_path / "artifact"
        with tarfile.open(artifact, mode) as tar:
            data = b"weaver-binary"
            info = tarfile.TarInfo("weaver-x86_64-unknown-linux-gnu/weaver")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
            readme = b"docs"
            info = tarfile.TarInfo("weaver-x86_64-unknown-linux-gnu/README.md")
            info.size = len(readme)
            tar.addfile(info, io.BytesIO(readme))

        out = extract_binary(artifact, tmp_path / "x", "weaver", source_url=URL + suffix)
        assert out.read_bytes() == b"weaver-binary"

    def test_zip_archive(self, tmp_path):
        artifact = tmp_path / "artifact"
        with zipfile.ZipFile(artifact, "w") as zf:
            zf.writestr("dist/weaver.exe", b"pe-binary")
        out = extract_binary(artifact, tmp_path / "x", "weaver.exe", source_url=URL + ".zip")
        assert out.read_bytes() == b"pe-binary"

    def test_archive_without_executable(self, tmp_path):
        artifact = tmp_path / "artifact"
        with zipfile.ZipFile(artifact, "w") as zf:
            zf.writestr("README.md", b"nothing here")
        with pytest.raises(DownloadError, match="does not contain"):
            extract_binary(artifact, tmp_path / "x", "weaver", source_url=URL + ".zip")

    def test_corrupt_archive(self, tmp_path):
        artifact = tmp_path / "artifact"
        artifact.write_bytes(b"not a tarball")
        with pytest.raises(DownloadError, match="Cannot extract"):
            extract_binary(artifact, tmp_path / "x", "weaver", source_url=URL + ".tar.gz")
