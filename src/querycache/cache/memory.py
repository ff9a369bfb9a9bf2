"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/memory.py.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from fnmatch import fnmatchcase
from threading import Lock

from .base import CacheBackend, CacheItemPriority


@dataclass(slots=True)
class _Row:
    """One stored value with expiry and eviction metadata."""

    value: str
    expires_at_s: float | None
    priority: CacheItemPriority
    seq: int


class InMemoryCacheBackend(CacheBackend):
    """
    Process-local cache backend suitable for single-process deployments and tests.

    When `max_entries` is set, writes past capacity evict expired rows first,
    then the lowest-priority, oldest rows. `NEVER_REMOVE` rows are never evicted.
    `native_scan=False` hides pattern scanning so the store's key index is used.
    """

    backend_id = "inmemory"

    def __init__(
        self,
        *,
        max_entries: int | None = None,
        native_scan: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.supports_pattern_scan = native_scan
        self._max_entries = max_entries
        self._clock = clock
        self._rows: dict[str, _Row] = {}
        self._seq = itertools.count()
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._rows)

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    def _live(self, key: str, now_s: float) -> _Row | None:
        row = self._rows.get(key)
        if row is None:
            return None
        if row.expires_at_s is not None and row.expires_at_s <= now_s:
            self._rows.pop(key, None)
            return None
        return row

    def _purge_expired(self, now_s: float) -> None:
        dead = [
            key
            for key, row in self._rows.items()
            if row.expires_at_s is not None and row.expires_at_s <= now_s
        ]
        for key in dead:
            del self._rows[key]

    def _evict(self, now_s: float) -> None:
        if self._max_entries is None or len(self._rows) <= self._max_entries:
            return
        self._purge_expired(now_s)
        overflow = len(self._rows) - self._max_entries
        if overflow <= 0:
            return
        candidates = sorted(
            (
                (row.priority, row.seq, key)
                for key, row in self._rows.items()
                if row.priority is not CacheItemPriority.NEVER_REMOVE
            ),
        )
        for _, _, key in candidates[:overflow]:
            del self._rows[key]

    def _write(
        self, key: str, value: str, ttl_s: float | None, priority: CacheItemPriority
    ) -> None:
        now_s = self._clock()
        self._rows[key] = _Row(
            value=value,
            expires_at_s=None if ttl_s is None else now_s + ttl_s,
            priority=priority,
            seq=next(self._seq),
        )
        self._evict(now_s)

    async def get(self, key: str) -> str | None:
        with self._lock:
            row = self._live(key, self._clock())
            return None if row is None else row.value

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        with self._lock:
            self._write(key, value, ttl_s, priority)

    async def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._rows.pop(key, None) is not None:
                    removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key, self._clock()) is not None

    async def expire(self, key: str, ttl_s: float) -> bool:
        with self._lock:
            now_s = self._clock()
            row = self._live(key, now_s)
            if row is None:
                return False
            row.expires_at_s = now_s + ttl_s
            return True

    async def scan(self, pattern: str) -> list[str]:
        if not self.supports_pattern_scan:
            raise NotImplementedError("pattern scan disabled for this backend")
        with self._lock:
            self._purge_expired(self._clock())
            return [key for key in self._rows if fnmatchcase(key, pattern)]

    async def get_many(self, keys: list[str]) -> dict[str, str | None]:
        with self._lock:
            now_s = self._clock()
            out: dict[str, str | None] = {}
            for key in keys:
                row = self._live(key, now_s)
                out[key] = None if row is None else row.value
            return out

    async def set_many(
        self,
        items: Mapping[str, str],
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        with self._lock:
            for key, value in items.items():
                self._write(key, value, ttl_s, priority)

    async def close(self) -> None:
        with self._lock:
            self._rows.clear()
