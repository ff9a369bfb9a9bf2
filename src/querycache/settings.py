"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import CacheConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env(*names: str) -> str | None:
    """Value of the first `names` variable that is set to something non-blank."""
    values = (os.environ.get(name, "").strip() for name in names)
    return next((value for value in values if value), None)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise CacheConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_number(name: str, default: int | float | None, cast: type[int] | type[float]):
    raw = _env(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise CacheConfigError(f"{name} must be a number, got {raw!r}") from exc


def _redis_url_from_env() -> str | None:
    url = _env("QUERYCACHE_REDIS_URL", "REDIS_URL")
    host = _env("QUERYCACHE_REDIS_HOST")
    if url or host is None:
        return url
    port = _env("QUERYCACHE_REDIS_PORT") or "6379"
    db = _env("QUERYCACHE_REDIS_DB") or "0"
    password = _env("QUERYCACHE_REDIS_PASSWORD")
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/{db}"


@dataclass(frozen=True, slots=True)
class CacheSettings:
    """Explicit settings used by cache backends and pipeline behaviors."""

    backend: str = "inmemory"
    enabled: bool = True
    default_ttl_s: float = 300.0
    key_namespace: str = "querycache"
    max_entries: int | None = None
    single_flight: bool = True
    coalesce_misses: bool = False

    redis_url: str | None = None
    redis_timeout_s: float = 2.0

    def __post_init__(self) -> None:
        if self.default_ttl_s <= 0:
            raise CacheConfigError("default_ttl_s must be > 0")
        if self.max_entries is not None and self.max_entries < 1:
            raise CacheConfigError("max_entries must be >= 1")

    @staticmethod
    def from_env() -> "CacheSettings":
        """Load settings from `QUERYCACHE_*` environment variables."""
        return CacheSettings(
            backend=(_env("QUERYCACHE_BACKEND") or "inmemory").lower(),
            enabled=_env_bool("QUERYCACHE_ENABLED", True),
            default_ttl_s=_env_number("QUERYCACHE_DEFAULT_TTL_S", 300.0, float),
            key_namespace=_env("QUERYCACHE_KEY_NAMESPACE") or "querycache",
            max_entries=_env_number("QUERYCACHE_MAX_ENTRIES", None, int),
            single_flight=_env_bool("QUERYCACHE_SINGLE_FLIGHT", True),
            coalesce_misses=_env_bool("QUERYCACHE_COALESCE_MISSES", False),
            redis_url=_redis_url_from_env(),
            redis_timeout_s=_env_number("QUERYCACHE_REDIS_TIMEOUT_S", 2.0, float),
        )
