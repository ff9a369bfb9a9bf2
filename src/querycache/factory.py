"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for building cache stores from settings or environment variables.
"""

from __future__ import annotations

from typing import Any

from .cache.base import CacheEntryOptions
from .cache.registry import create_cache_backend
from .cache.store import CacheStore
from .metrics import CacheMetrics
from .settings import CacheSettings


def create_cache_store(
    settings: CacheSettings | None = None,
    *,
    redis_client: Any | None = None,
    metrics: CacheMetrics | None = None,
) -> CacheStore:
    """
    Build a `CacheStore` for `settings.backend`.

    Backends:
    - `inmemory` (default)
    - `redis`
    - `tiered` (redis primary, in-memory fallback)

    Redis resolution uses the provided `redis_client` when supplied, otherwise
    a client built from `settings.redis_url`.
    """
    settings = settings or CacheSettings()
    backend = create_cache_backend(settings=settings, redis_client=redis_client)
    return CacheStore(
        backend,
        default_options=CacheEntryOptions.from_seconds(settings.default_ttl_s),
        single_flight=settings.single_flight,
        metrics=metrics,
    )


def create_cache_store_from_env(
    *,
    redis_client: Any | None = None,
    metrics: CacheMetrics | None = None,
) -> CacheStore:
    """Create a cache store from `QUERYCACHE_*` environment variables."""
    return create_cache_store(
        CacheSettings.from_env(), redis_client=redis_client, metrics=metrics
    )
