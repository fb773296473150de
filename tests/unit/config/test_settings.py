# tests/unit/config/test_settings.py - v3
"""Tests for config/settings.py - typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from weaverkit.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_cache(self):
        s = Settings(_env_file=None)
        assert s.cache_enabled is True
        assert s.cache_backend == "json"
        assert s.cache_root == Path(".weaver-cache/results")
        assert s.cache_max_size_mb == 100

    def test_default_freshness_windows(self):
        s = Settings(_env_file=None)
        assert s.freshness_windows == {
            "validate": 86400,
            "generate": 3600,
            "docs": 43200,
            "clean": 0,
        }

    def test_default_download(self):
        s = Settings(_env_file=None)
        assert "{version}" in s.download_url
        assert "{platform}" in s.download_url
        assert s.hash_url.endswith(".sha256")
        assert s.max_retries == 3
        assert s.verify_hashes is True

    def test_default_execution(self):
        s = Settings(_env_file=None)
        assert s.command_timeout_s == 30.0
        assert s.idempotent_operations_list == ["validate", "docs"]
        assert s.cache_failures_for_list == ["validate"]
        assert s.unreadable_input_policy == "fail"


class TestSettingsEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("WEAVER_MAX_RETRIES", "5")
        monkeypatch.setenv("WEAVER_CACHE_BACKEND", "sqlite")
        s = Settings(_env_file=None)
        assert s.max_retries == 5
        assert s.cache_backend == "sqlite"

    def test_list_parsing(self):
        s = Settings(_env_file=None, cache_failures_for=" validate , generate ,")
        assert s.cache_failures_for_list == ["validate", "generate"]

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("WEAVER_CACHE_TTL_GENERATE_S=120\n", encoding="utf-8")
        s = Settings(_env_file=str(env))
        assert s.freshness_windows["generate"] == 120


class TestSettingsValidation:
    def test_download_url_needs_version(self):
        with pytest.raises(ConfigurationError, match="version"):
            Settings(_env_file=None, download_url="https://example.test/weaver")

    def test_hash_url_required_when_verifying(self):
        with pytest.raises(ConfigurationError, match="HASH_URL"):
            Settings(_env_file=None, hash_url="")

    def test_unknown_download_placeholder(self):
        with pytest.raises(ConfigurationError, match=r"DOWNLOAD_URL: unknown placeholder\(s\) target"):
            Settings(_env_file=None, download_url="https://x.test/{version}/{target}.tar.xz")

    def test_unknown_hash_placeholder(self):
        with pytest.raises(ConfigurationError, match="HASH_URL"):
            Settings(_env_file=None, hash_url="https://x.test/{version}/{sha}.sha256")

    def test_malformed_template(self):
        with pytest.raises(ConfigurationError, match="malformed"):
            Settings(_env_file=None, download_url="https://x.test/{version}/{platform")

    def test_all_placeholders_accepted(self):
        s = Settings(
            _env_file=None,
            download_url="https://x.test/{version}/{os}-{arch}/weaver-{platform}.zip",
        )
        assert "{arch}" in s.download_url

    def test_min_disk_space_non_negative(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, min_disk_space_mb=-1)

    def test_hash_url_optional_without_verification(self):
        s = Settings(_env_file=None, hash_url="", verify_hashes=False)
        assert s.hash_url == ""

    def test_retry_delays_ordered(self):
        with pytest.raises(ConfigurationError, match="RETRY"):
            Settings(_env_file=None, retry_base_delay_s=5.0, retry_max_delay_s=1.0)

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError, match="timeouts"):
            Settings(_env_file=None, command_timeout_s=0)

    def test_max_retries_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_retries=0)

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cache_ttl_validate_s=-1)

    def test_load_settings_overrides(self):
        s = load_settings(_env_file=None, max_workers=2)
        assert s.max_workers == 2
