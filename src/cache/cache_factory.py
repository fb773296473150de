# src/cache/cache_factory.py - v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from weaverkit.cache.base_cache_store import BaseCacheStore, Clock, FreshnessPolicy
from weaverkit.config.settings import Settings
from weaverkit.storage.layout import sqlite_db_path


def create_cache_store(settings: Settings | None = None, *, clock: Clock | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to ``Settings()``.
        clock: Time source, injectable for tests.

    Returns:
        Configured BaseCacheStore implementation.
    """
    settings = settings or Settings()
    policy = FreshnessPolicy.from_settings(settings)
    max_size = settings.cache_max_size_mb * 1024 * 1024

    if settings.cache_backend == "json":
        from weaverkit.cache.json_store import JsonCacheStore
        return JsonCacheStore(
            settings.cache_root, policy=policy, max_size_bytes=max_size, clock=clock
        )

    if settings.cache_backend == "sqlite":
        from weaverkit.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(
            sqlite_db_path(settings.cache_root), policy=policy, max_size_bytes=max_size, clock=clock
        )

    raise ValueError(f"Unsupported cache backend: {settings.cache_backend!r}")
