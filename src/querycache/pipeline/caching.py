"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Read-through caching behavior for cacheable queries.
"""

from __future__ import annotations

import logging
from typing import Any

from ..cache.coalescing import RequestCoalescer
from ..cache.store import CacheStore
from ..keys import CacheKeyGenerator
from ..policy import CacheablePolicy, PolicyRegistry
from .mediator import RequestContext, RequestNext

logger = logging.getLogger("querycache.pipeline.caching")


class CachingBehavior:
    """
    Serve cacheable queries from the store and populate it on a miss.

    Requests without a cacheable policy pass straight through. Cache faults
    never fail the request: a failed read is a miss and a failed write is
    dropped. Handler errors propagate and are never cached, and neither are
    `None` responses. Requests whose handler has no known response type are
    not cached, since a hit could not return the handler's own objects.

    With `coalesce_misses`, concurrent misses for one key inside this process
    share a single handler run. Across processes, and between a query in
    flight and a command's invalidation, a stale entry can still be written
    until its TTL or the next invalidation.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        policies: PolicyRegistry | None = None,
        key_generator: CacheKeyGenerator | None = None,
        enabled: bool = True,
        coalesce_misses: bool = False,
    ) -> None:
        self._store = store
        self._policies = policies or PolicyRegistry()
        self._keys = key_generator or CacheKeyGenerator(self._policies)
        self._enabled = enabled
        self._coalescer = RequestCoalescer() if coalesce_misses else None
        self._untyped: set[type] = set()

    async def __call__(
        self, call_next: RequestNext, request: Any, ctx: RequestContext
    ) -> Any:
        policy = self._policies.cacheable_policy_for(type(request)) if self._enabled else None
        if policy is None:
            return await call_next(request, ctx)

        if ctx.response_type is Any:
            # Cached payloads can only be rebuilt into a known response type.
            if type(request) not in self._untyped:
                self._untyped.add(type(request))
                logger.warning(
                    "No response type for cacheable %s, bypassing cache; "
                    "annotate the handler or pass response_type",
                    type(request).__name__,
                )
            return await call_next(request, ctx)

        try:
            key = self._keys.generate_key(request, principal_id=ctx.principal_id)
        except Exception:
            logger.warning(
                "Cannot derive cache key for %s, bypassing cache",
                type(request).__name__,
                exc_info=True,
            )
            return await call_next(request, ctx)

        cached = await self._lookup(key, ctx.response_type)
        if cached is not None:
            logger.debug("Serving %s from cache key %s", type(request).__name__, key)
            return cached

        if self._coalescer is None:
            response, leader = await call_next(request, ctx), True
        else:
            response, leader = await self._coalescer.run(
                key, lambda: call_next(request, ctx)
            )

        if leader and response is not None:
            await self._populate(key, response, policy)
        return response

    async def _lookup(self, key: str, response_type: Any) -> Any | None:
        try:
            return await self._store.get(key, response_type)
        except Exception:
            logger.exception("Error retrieving from cache for key %s", key)
            return None

    async def _populate(self, key: str, response: Any, policy: CacheablePolicy) -> None:
        try:
            await self._store.set(key, response, policy.entry_options())
        except Exception:
            logger.exception("Error caching response for key %s", key)
