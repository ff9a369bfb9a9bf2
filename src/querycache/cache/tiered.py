"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/tiered.py.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TypeVar

from ..errors import CacheBackendError
from .base import CacheBackend, CacheItemPriority

logger = logging.getLogger("querycache.cache.tiered")

T = TypeVar("T")


class TieredCacheBackend(CacheBackend):
    """
    Two-tier backend: a primary (usually Redis) backed by a local fallback.

    The primary is authoritative for reads: a primary miss is a miss, and the
    fallback is consulted only while the primary raises. Processes sharing one
    primary therefore never serve a local copy that another process already
    invalidated. Writes and removals go to both tiers concurrently and only
    fail when both tiers fail.
    """

    backend_id = "tiered"

    def __init__(self, primary: CacheBackend, fallback: CacheBackend) -> None:
        self.primary = primary
        self.fallback = fallback
        self.supports_pattern_scan = (
            primary.supports_pattern_scan and fallback.supports_pattern_scan
        )

    async def _both(
        self, op: str, call: Callable[[CacheBackend], Awaitable[T]]
    ) -> list[T]:
        """Run `call` on both tiers; raise only if neither succeeded."""
        results = await asyncio.gather(
            call(self.primary), call(self.fallback), return_exceptions=True
        )
        ok: list[T] = []
        for tier, result in zip(("primary", "fallback"), results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "%s cache tier failed during %s", tier, op, exc_info=result
                )
                continue
            ok.append(result)
        if not ok:
            raise CacheBackendError(f"all cache tiers failed during {op}")
        return ok

    async def get(self, key: str) -> str | None:
        try:
            return await self.primary.get(key)
        except Exception:
            logger.warning(
                "Primary cache failed for key %s, falling back", key, exc_info=True
            )
        return await self.fallback.get(key)

    async def set(
        self,
        key: str,
        value: str,
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        await self._both(
            "set", lambda tier: tier.set(key, value, ttl_s=ttl_s, priority=priority)
        )

    async def delete(self, *keys: str) -> int:
        counts = await self._both("delete", lambda tier: tier.delete(*keys))
        return max(counts)

    async def exists(self, key: str) -> bool:
        try:
            return await self.primary.exists(key)
        except Exception:
            logger.warning(
                "Primary cache failed checking key %s", key, exc_info=True
            )
        return await self.fallback.exists(key)

    async def expire(self, key: str, ttl_s: float) -> bool:
        refreshed = await self._both("expire", lambda tier: tier.expire(key, ttl_s))
        return any(refreshed)

    async def scan(self, pattern: str) -> list[str]:
        found = await self._both("scan", lambda tier: tier.scan(pattern))
        return sorted(set().union(*found))

    async def get_many(self, keys: list[str]) -> dict[str, str | None]:
        try:
            return await self.primary.get_many(keys)
        except Exception:
            logger.warning(
                "Primary cache failed for batch read, falling back", exc_info=True
            )
        return await self.fallback.get_many(keys)

    async def set_many(
        self,
        items: Mapping[str, str],
        *,
        ttl_s: float | None,
        priority: CacheItemPriority = CacheItemPriority.NORMAL,
    ) -> None:
        await self._both(
            "set_many",
            lambda tier: tier.set_many(items, ttl_s=ttl_s, priority=priority),
        )

    async def close(self) -> None:
        await self._both("close", lambda tier: tier.close())
