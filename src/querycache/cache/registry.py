"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/registry.py.
"""

from __future__ import annotations

from collections.abc import Callable
from threading import Lock
from typing import Any

from ..errors import CacheConfigError
from ..settings import CacheSettings
from .base import CacheBackend
from .memory import InMemoryCacheBackend
from .redis import RedisCacheBackend
from .tiered import TieredCacheBackend

BackendFactory = Callable[..., CacheBackend]
"""Called as ``factory(settings, redis_client=...)``; returns a new backend."""

_REGISTRY: dict[str, BackendFactory] = {}
_LOCK = Lock()


def _normalize(name: str) -> str:
    key = name.strip().lower()
    if key in ("mem", "memory", "in_memory"):
        return "inmemory"
    return key


def register_cache_backend(
    name: str,
    factory: BackendFactory,
    *,
    overwrite: bool = False,
) -> None:
    """Register one backend factory by name."""
    key = _normalize(name)
    if not key:
        raise CacheConfigError("Cache backend name must be non-empty")

    with _LOCK:
        if key in _REGISTRY and not overwrite:
            raise CacheConfigError(f"Cache backend already registered: {key}")
        _REGISTRY[key] = factory


def create_cache_backend(
    backend: str | CacheBackend | None = None,
    *,
    settings: CacheSettings | None = None,
    redis_client: Any | None = None,
) -> CacheBackend:
    """Resolve a backend from name/instance/settings; names build fresh instances."""
    settings = settings or CacheSettings()
    if backend is not None and not isinstance(backend, str):
        return backend

    key = _normalize(backend if backend is not None else settings.backend)
    with _LOCK:
        factory = _REGISTRY.get(key)
    if factory is None:
        raise CacheConfigError(f"Unknown cache backend '{key}'")
    return factory(settings, redis_client=redis_client)


def list_cache_backends() -> list[str]:
    """List registered backend names."""
    with _LOCK:
        return sorted(_REGISTRY.keys())


def _build_redis_client(settings: CacheSettings) -> Any:
    try:
        import redis.asyncio as redis
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise CacheConfigError(
            "Redis cache backend requires `redis` to be installed."
        ) from exc
    url = settings.redis_url or "redis://localhost:6379/0"
    return redis.Redis.from_url(
        url,
        socket_timeout=settings.redis_timeout_s,
        socket_connect_timeout=settings.redis_timeout_s,
    )


def _inmemory(settings: CacheSettings, *, redis_client: Any | None = None) -> CacheBackend:
    return InMemoryCacheBackend(max_entries=settings.max_entries)


def _redis(settings: CacheSettings, *, redis_client: Any | None = None) -> CacheBackend:
    client = redis_client if redis_client is not None else _build_redis_client(settings)
    return RedisCacheBackend(client, namespace=settings.key_namespace)


def _tiered(settings: CacheSettings, *, redis_client: Any | None = None) -> CacheBackend:
    return TieredCacheBackend(
        primary=_redis(settings, redis_client=redis_client),
        fallback=_inmemory(settings),
    )


register_cache_backend("inmemory", _inmemory)
register_cache_backend("redis", _redis)
register_cache_backend("tiered", _tiered)
