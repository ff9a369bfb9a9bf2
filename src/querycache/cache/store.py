"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Backend-agnostic cache store with expiration, serialization and pattern removal.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from fnmatch import fnmatchcase
from threading import Lock
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..errors import CacheBackendError, CacheSerializationError
from ..metrics import CACHE_ERRORS, CACHE_HITS, CACHE_MISSES, CacheMetrics, NoOpCacheMetrics
from .base import CacheBackend, CacheEntryOptions
from .coalescing import RequestCoalescer

logger = logging.getLogger("querycache.cache.store")

T = TypeVar("T")

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)
_DELETE_CHUNK = 500
_WILDCARDS = "*?["


class KeyIndex:
    """
    In-process index of written keys, bucketed by their first ``:`` segment.

    Used for pattern removal when a backend cannot scan its keyspace. Only keys
    written through this process are visible to it.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, set[str]] = {}
        self._lock = Lock()

    @staticmethod
    def _bucket(key: str) -> str:
        return key.split(":", 1)[0]

    def add(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._buckets.setdefault(self._bucket(key), set()).add(key)

    def discard(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                bucket = self._buckets.get(self._bucket(key))
                if bucket is None:
                    continue
                bucket.discard(key)
                if not bucket:
                    del self._buckets[self._bucket(key)]

    def match(self, pattern: str) -> list[str]:
        literal = pattern
        for index, char in enumerate(pattern):
            if char in _WILDCARDS:
                literal = pattern[:index]
                break
        with self._lock:
            if ":" in literal:
                buckets = [self._buckets.get(literal.split(":", 1)[0], set())]
            else:
                buckets = list(self._buckets.values())
            return sorted(
                key for bucket in buckets for key in bucket if fnmatchcase(key, pattern)
            )

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._buckets.values())


class CacheStore:
    """
    Typed cache facade over one `CacheBackend`.

    Values are serialized with pydantic into a JSON envelope that also carries
    the sliding window and the absolute deadline, so every backend expires
    entries the same way. The store is the fault boundary: backend and
    serialization errors are logged and surface as a miss on reads and as a
    dropped write on writes. `asyncio.CancelledError` is never absorbed.

    `get_or_set` deduplicates concurrent misses for one key within this event
    loop when `single_flight` is on. Callers in other processes can still run
    the factory concurrently; the last write wins.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        default_options: CacheEntryOptions | None = None,
        single_flight: bool = True,
        metrics: CacheMetrics | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._default_options = default_options or CacheEntryOptions.default()
        self._metrics = metrics or NoOpCacheMetrics()
        self._clock = clock
        self._coalescer = RequestCoalescer() if single_flight else None
        self._index = None if backend.supports_pattern_scan else KeyIndex()
        self._adapters: dict[Any, TypeAdapter[Any]] = {}

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def key_index(self) -> KeyIndex | None:
        """Fallback key index, present only for backends without pattern scan."""
        return self._index

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _adapter(self, type_: Any) -> TypeAdapter[Any]:
        if type_ is Any:
            return _ANY_ADAPTER
        try:
            adapter = self._adapters.get(type_)
        except TypeError:
            return TypeAdapter(type_)
        if adapter is None:
            adapter = TypeAdapter(type_)
            self._adapters[type_] = adapter
        return adapter

    def _encode(self, value: Any, options: CacheEntryOptions, now_s: float) -> str:
        try:
            payload = _ANY_ADAPTER.dump_python(value, mode="json")
            return json.dumps(
                {
                    "v": payload,
                    "s": options.sliding_ttl_s,
                    "d": options.absolute_deadline(now_s),
                },
                ensure_ascii=True,
                separators=(",", ":"),
            )
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(
                f"cannot serialize {type(value).__name__}: {exc}"
            ) from exc

    def _decode(self, blob: str, type_: Any) -> tuple[Any, float | None, float | None]:
        try:
            row = json.loads(blob)
            if not isinstance(row, dict) or "v" not in row:
                raise CacheSerializationError("cache envelope is malformed")
            value = self._adapter(type_).validate_python(row["v"])
        except (TypeError, ValueError, ValidationError) as exc:
            raise CacheSerializationError(f"cannot deserialize cache entry: {exc}") from exc
        sliding = row.get("s")
        deadline = row.get("d")
        return (
            value,
            float(sliding) if isinstance(sliding, (int, float)) else None,
            float(deadline) if isinstance(deadline, (int, float)) else None,
        )

    def _record_error(self, op: str) -> None:
        self._metrics.incr(
            CACHE_ERRORS, tags={"backend": self._backend.backend_id, "op": op}
        )

    # ------------------------------------------------------------------
    # Single-key operations
    # ------------------------------------------------------------------

    async def _read(self, key: str, blob: str | None, type_: Any) -> Any | None:
        """Turn one raw backend value into a live, decoded value or `None`."""
        if blob is None:
            return None
        try:
            value, sliding_s, deadline_s = self._decode(blob, type_)
        except CacheSerializationError:
            logger.warning("Discarding unreadable cache entry %s", key, exc_info=True)
            self._record_error("deserialize")
            return None

        now_s = self._clock()
        if deadline_s is not None and now_s >= deadline_s:
            await self._drop(key)
            return None
        if sliding_s is not None:
            ttl_s = sliding_s if deadline_s is None else min(sliding_s, deadline_s - now_s)
            try:
                await self._backend.expire(key, ttl_s)
            except Exception:
                logger.warning("Sliding refresh failed for key %s", key, exc_info=True)
                self._record_error("expire")
        return value

    async def _drop(self, key: str) -> None:
        try:
            await self._backend.delete(key)
        except Exception:
            logger.warning("Cache delete failed for key %s", key, exc_info=True)
            self._record_error("delete")
            return
        if self._index is not None:
            self._index.discard([key])

    async def get(self, key: str, type_: Any = Any) -> Any | None:
        """Return the cached value decoded as `type_`, or `None` when absent."""
        try:
            blob = await self._backend.get(key)
        except Exception:
            logger.warning("Cache get failed for key %s", key, exc_info=True)
            self._record_error("get")
            return None

        value = await self._read(key, blob, type_)
        tags = {"backend": self._backend.backend_id}
        if value is None:
            logger.debug("Cache miss for key %s", key)
            self._metrics.incr(CACHE_MISSES, tags=tags)
        else:
            logger.debug("Cache hit for key %s", key)
            self._metrics.incr(CACHE_HITS, tags=tags)
        return value

    async def set(
        self, key: str, value: Any, options: CacheEntryOptions | None = None
    ) -> bool:
        """
        Store `value` under `key`, replacing any previous entry.

        `None` values are not stored. Returns whether the write landed.
        """
        if value is None:
            return False
        options = options or self._default_options
        now_s = self._clock()
        ttl_s = options.initial_ttl_s(now_s)
        if ttl_s is not None and ttl_s <= 0:
            logger.debug("Skipping already-expired write for key %s", key)
            return False
        try:
            blob = self._encode(value, options, now_s)
        except CacheSerializationError:
            logger.warning("Cache serialize failed for key %s", key, exc_info=True)
            self._record_error("serialize")
            return False
        try:
            await self._backend.set(key, blob, ttl_s=ttl_s, priority=options.priority)
        except Exception:
            logger.warning("Cache set failed for key %s", key, exc_info=True)
            self._record_error("set")
            return False
        if self._index is not None:
            self._index.add([key])
        logger.debug("Cached key %s with ttl %s", key, ttl_s)
        return True

    async def remove(self, key: str) -> None:
        await self._drop(key)

    async def exists(self, key: str) -> bool:
        try:
            return await self._backend.exists(key)
        except Exception:
            logger.warning("Cache exists failed for key %s", key, exc_info=True)
            self._record_error("exists")
            return False

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        options: CacheEntryOptions | None = None,
        *,
        type_: Any = Any,
    ) -> T:
        """
        Return the cached value or compute, store and return it.

        Factory errors propagate to the caller and nothing is cached.
        """
        cached = await self.get(key, type_)
        if cached is not None:
            return cached
        if self._coalescer is None:
            value, leader = await factory(), True
        else:
            value, leader = await self._coalescer.run(key, factory)
        if leader:
            await self.set(key, value, options)
        return value

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def remove_by_pattern(self, pattern: str, *, raise_errors: bool = False) -> int:
        """
        Remove every key matching a glob pattern such as ``"ListPeopleQuery:*"``.

        Returns the number of removed keys. Failures are logged and return 0,
        or raise `CacheBackendError` when `raise_errors` is set so the caller
        can tell an empty match from a failed purge.
        """
        try:
            if self._index is None:
                keys = await self._backend.scan(pattern)
            else:
                keys = self._index.match(pattern)
            removed = 0
            for start in range(0, len(keys), _DELETE_CHUNK):
                chunk = keys[start : start + _DELETE_CHUNK]
                removed += await self._backend.delete(*chunk)
                if self._index is not None:
                    self._index.discard(chunk)
        except Exception as exc:
            self._record_error("remove_by_pattern")
            if raise_errors:
                raise CacheBackendError(f"pattern removal failed for {pattern}") from exc
            logger.warning(
                "Cache pattern removal failed for %s", pattern, exc_info=True
            )
            return 0
        logger.debug("Removed %d cache keys matching %s", removed, pattern)
        return removed

    async def clear(self) -> int:
        return await self.remove_by_pattern("*")

    async def get_many(self, keys: Iterable[str], type_: Any = Any) -> dict[str, Any | None]:
        keys = list(dict.fromkeys(keys))
        try:
            blobs = await self._backend.get_many(keys)
        except Exception:
            logger.warning("Cache batch get failed", exc_info=True)
            self._record_error("get_many")
            return {key: None for key in keys}
        return {key: await self._read(key, blobs.get(key), type_) for key in keys}

    async def set_many(
        self, items: Mapping[str, Any], options: CacheEntryOptions | None = None
    ) -> int:
        """Store several values with one expiration policy; returns keys written."""
        options = options or self._default_options
        now_s = self._clock()
        ttl_s = options.initial_ttl_s(now_s)
        if ttl_s is not None and ttl_s <= 0:
            return 0
        blobs: dict[str, str] = {}
        for key, value in items.items():
            if value is None:
                continue
            try:
                blobs[key] = self._encode(value, options, now_s)
            except CacheSerializationError:
                logger.warning("Cache serialize failed for key %s", key, exc_info=True)
                self._record_error("serialize")
        if not blobs:
            return 0
        try:
            await self._backend.set_many(blobs, ttl_s=ttl_s, priority=options.priority)
        except Exception:
            logger.warning("Cache batch set failed", exc_info=True)
            self._record_error("set_many")
            return 0
        if self._index is not None:
            self._index.add(blobs)
        return len(blobs)

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception:
            logger.warning("Cache backend close failed", exc_info=True)
