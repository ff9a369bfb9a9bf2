"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/redis.py.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from ..errors import CacheBackendError
from .base import CacheBackend, CacheItemPriority


@contextmanager
def _redis_errors(op: str) -> Iterator[None]:
    """Translate client exceptions into `CacheBackendError`."""
    try:
        yield
    except CacheBackendError:
        raise
    except Exception as exc:
        raise CacheBackendError(f"redis {op} failed: {exc}") from exc


def _text(raw: str | bytes | None) -> str | None:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return raw


def _ttl_ms(ttl_s: float) -> int:
    return max(1, int(ttl_s * 1000))


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed cache backend for multi-process deployments.

    Every key is stored under ``{namespace}:`` so pattern removal, including
    ``"*"``, never touches keys owned by other applications sharing the server.
    Redis TTLs carry expiry; pattern removal walks ``SCAN MATCH``.

    Requires ``redis.asyncio`` (``pip install redis``).

    Args:
        redis: An ``redis.asyncio.Redis`` client instance.
        namespace: Key prefix for namespacing; empty disables prefixing.
        scan_count: ``COUNT`` hint passed to each ``SCAN`` round-trip.
    """

    backend_id = "redis"
    supports_pattern_scan = True

    def __init__(
        self,
        redis: Any,
        *,
        namespace: str = "querycache",
        scan_count: int = 500,
    ) -> None:
        self._redis = redis
        self._namespace = namespace.strip().rstrip(":")
        self._scan_count = scan_count

    @property
    def namespace(self) -> str:
        return self._namespace

    def _key(self, key: str) -> str:
        """Qualified Redis key for one cache key."""
        return f"{self._namespace}:{key}" if self._namespace else key

    def _unkey(self, raw: str | bytes) -> str:
        """Strip the namespace from a key returned by SCAN."""
        key = _text(raw) or ""
        if self._namespace:
            return key[len(self._namespace) + 1 :]
        return key

    async def get(self, key: str) -> str | None:
        with _redis_errors("get"):
            return _text(await self._redis.get(self._key(key)))

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        # Redis evicts by its own maxmemory policy; priority is not forwarded.
        with _redis_errors("set"):
            if ttl_s is None:
                await self._redis.set(self._key(key), value)
            else:
                await self._redis.set(self._key(key), value, px=_ttl_ms(ttl_s))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _redis_errors("delete"):
            return int(await self._redis.delete(*(self._key(k) for k in keys)))

    async def exists(self, key: str) -> bool:
        with _redis_errors("exists"):
            return bool(await self._redis.exists(self._key(key)))

    async def expire(self, key: str, ttl_s: float) -> bool:
        with _redis_errors("expire"):
            return bool(await self._redis.pexpire(self._key(key), _ttl_ms(ttl_s)))

    async def scan(self, pattern: str) -> list[str]:
        with _redis_errors("scan"):
            return [
                self._unkey(raw)
                async for raw in self._redis.scan_iter(
                    match=self._key(pattern), count=self._scan_count
                )
            ]

    async def get_many(self, keys: list[str]) -> dict[str, str | None]:
        if not keys:
            return {}
        with _redis_errors("mget"):
            values = await self._redis.mget([self._key(k) for k in keys])
        return {key: _text(value) for key, value in zip(keys, values)}

    async def set_many(
        self,
        items: Mapping[str, str],
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        if not items:
            return
        with _redis_errors("set_many"):
            async with self._redis.pipeline(transaction=False) as pipe:
                for key, value in items.items():
                    if ttl_s is None:
                        pipe.set(self._key(key), value)
                    else:
                        pipe.set(self._key(key), value, px=_ttl_ms(ttl_s))
                await pipe.execute()

    async def close(self) -> None:
        with _redis_errors("close"):
            await self._redis.aclose()
