# src/config/settings.py - v3
"""Typed process-level configuration loaded from the environment and .env.

Covers the cache, the executable store, subprocess execution and logging.
Project-level settings (tool version, args, directories) live in
config/models.py and are merged separately.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from weaverkit.core.errors import ConfigurationError
from weaverkit.executable.platforms import template_errors

DEFAULT_DOWNLOAD_URL = (
    "https://github.com/open-telemetry/weaver/releases/download/"
    "v{version}/weaver-{platform}.tar.xz"
)
DEFAULT_HASH_URL = DEFAULT_DOWNLOAD_URL + ".sha256"

__all__ = ["ConfigurationError", "Settings", "load_settings"]


class Settings(BaseSettings):
    """Application settings, overridable through WEAVER_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="WEAVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Result cache ===
    cache_enabled: bool = True
    cache_backend: Literal["json", "sqlite"] = "json"
    cache_root: Path = Path(".weaver-cache/results")
    cache_max_size_mb: int = 100

    # Freshness windows per operation kind (seconds)
    cache_ttl_validate_s: int = 24 * 60 * 60
    cache_ttl_generate_s: int = 60 * 60
    cache_ttl_docs_s: int = 12 * 60 * 60
    cache_ttl_default_s: int = 60 * 60

    # Operations whose failed results are cached too
    cache_failures_for: str = "validate"

    # === Executable store ===
    executable_root: Path = Path(".weaver-cache/bin")
    download_url: str = DEFAULT_DOWNLOAD_URL
    hash_url: str = DEFAULT_HASH_URL
    download_timeout_s: float = 30.0
    max_retries: int = 3
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 10.0
    verify_hashes: bool = True
    executable_retention_days: int = 30
    min_disk_space_mb: int = 100

    # === Execution ===
    command_timeout_s: float = 30.0
    execution_max_attempts: int = 2
    idempotent_operations: str = "validate,docs"
    max_workers: int = 8
    unreadable_input_policy: Literal["fail", "miss"] = "fail"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("max_retries", "execution_max_attempts", "max_workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator(
        "cache_ttl_validate_s", "cache_ttl_generate_s", "cache_ttl_docs_s",
        "cache_ttl_default_s", "executable_retention_days", "cache_max_size_mb",
        "min_disk_space_mb",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field rules for templates and timeouts."""
        errors: list[str] = []

        if "{version}" not in self.download_url:
            errors.append("DOWNLOAD_URL must contain a {version} placeholder")
        errors.extend(f"DOWNLOAD_URL: {e}" for e in template_errors(self.download_url))

        if self.verify_hashes and not self.hash_url:
            errors.append("VERIFY_HASHES requires HASH_URL")
        if self.hash_url:
            errors.extend(f"HASH_URL: {e}" for e in template_errors(self.hash_url))

        if self.download_timeout_s <= 0 or self.command_timeout_s <= 0:
            errors.append("timeouts must be > 0")

        if self.retry_base_delay_s < 0 or self.retry_max_delay_s < self.retry_base_delay_s:
            errors.append("RETRY_MAX_DELAY_S must be >= RETRY_BASE_DELAY_S >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_failures_for_list(self) -> list[str]:
        """Parse comma-separated operations whose failures are cached."""
        return [o.strip() for o in self.cache_failures_for.split(",") if o.strip()]

    @property
    def idempotent_operations_list(self) -> list[str]:
        """Parse comma-separated operations that are safe to re-execute."""
        return [o.strip() for o in self.idempotent_operations.split(",") if o.strip()]

    @property
    def freshness_windows(self) -> dict[str, int]:
        """Freshness window per operation kind, in seconds."""
        return {
            "validate": self.cache_ttl_validate_s,
            "generate": self.cache_ttl_generate_s,
            "docs": self.cache_ttl_docs_s,
            "clean": 0,
        }


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment and .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
