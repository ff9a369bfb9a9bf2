"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/base.py.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Protocol

DEFAULT_SLIDING_TTL_S = 300.0


class CacheItemPriority(IntEnum):
    """Eviction hint for backends that evict under memory pressure."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    NEVER_REMOVE = 3


@dataclass(frozen=True, slots=True)
class CacheEntryOptions:
    """
    Expiration policy for one cache write.

    Absolute and sliding expiration may be combined: a sliding entry is kept
    alive by reads but never outlives its absolute deadline. With neither set
    the entry never expires.
    """

    absolute_expiration: datetime | None = None
    absolute_ttl_s: float | None = None
    sliding_ttl_s: float | None = None
    priority: CacheItemPriority = CacheItemPriority.NORMAL
    size: int | None = None

    @classmethod
    def default(cls) -> CacheEntryOptions:
        return cls(sliding_ttl_s=DEFAULT_SLIDING_TTL_S)

    @classmethod
    def no_expiration(cls) -> CacheEntryOptions:
        return cls()

    @classmethod
    def from_seconds(cls, seconds: float) -> CacheEntryOptions:
        return cls(absolute_ttl_s=float(seconds))

    @classmethod
    def from_minutes(cls, minutes: float) -> CacheEntryOptions:
        return cls(absolute_ttl_s=float(minutes) * 60.0)

    @classmethod
    def from_hours(cls, hours: float) -> CacheEntryOptions:
        return cls(absolute_ttl_s=float(hours) * 3600.0)

    @classmethod
    def with_sliding(cls, seconds: float) -> CacheEntryOptions:
        return cls(sliding_ttl_s=float(seconds))

    def absolute_deadline(self, now_s: float) -> float | None:
        """Return the wall-clock epoch after which the entry is dead, if any."""
        candidates: list[float] = []
        if self.absolute_expiration is not None:
            expires = self.absolute_expiration
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            candidates.append(expires.timestamp())
        if self.absolute_ttl_s is not None:
            candidates.append(now_s + self.absolute_ttl_s)
        return min(candidates) if candidates else None

    def initial_ttl_s(self, now_s: float) -> float | None:
        """Backend TTL for a fresh write; `None` means no expiry."""
        deadline = self.absolute_deadline(now_s)
        remaining = None if deadline is None else deadline - now_s
        if self.sliding_ttl_s is None:
            return remaining
        if remaining is None:
            return self.sliding_ttl_s
        return min(self.sliding_ttl_s, remaining)


class CacheBackend(Protocol):
    """
    Raw string key/value service consumed by `CacheStore`.

    Backends raise `CacheBackendError` on infrastructure faults; the store is
    the boundary that absorbs them. `scan` is only called when
    `supports_pattern_scan` is true.
    """

    backend_id: str
    supports_pattern_scan: bool

    async def get(self, key: str) -> str | None: ...

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def exists(self, key: str) -> bool: ...

    async def expire(self, key: str, ttl_s: float) -> bool: ...

    async def scan(self, pattern: str) -> list[str]: ...

    async def get_many(self, keys: list[str]) -> dict[str, str | None]: ...

    async def set_many(
        self,
        items: Mapping[str, str],
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None: ...

    async def close(self) -> None: ...
