"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache invalidation behavior for mutating commands.
"""

from __future__ import annotations

import logging
from typing import Any

from ..cache.store import CacheStore
from ..keys import CacheKeyGenerator
from ..metrics import CACHE_INVALIDATIONS, CacheMetrics, NoOpCacheMetrics
from ..policy import InvalidationDeclaration, PolicyRegistry
from .mediator import RequestContext, RequestNext

logger = logging.getLogger("querycache.pipeline.invalidation")


class CacheInvalidationBehavior:
    """
    Purge cache entries declared by a command once it has succeeded.

    The handler always runs first; if it raises, nothing is purged and the
    error propagates. Each purge runs independently: a failure is logged and
    the remaining purges still run, and the command's response is returned
    regardless.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        policies: PolicyRegistry | None = None,
        key_generator: CacheKeyGenerator | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self._store = store
        self._policies = policies or PolicyRegistry()
        self._keys = key_generator or CacheKeyGenerator(self._policies)
        self._metrics = metrics or NoOpCacheMetrics()

    def patterns_for(self, declaration: InvalidationDeclaration) -> list[str]:
        if declaration.invalidate_all:
            return ["*"]
        if declaration.pattern is not None:
            return [declaration.pattern]
        return [self._keys.pattern_for(query_type) for query_type in declaration.query_types]

    async def __call__(
        self, call_next: RequestNext, request: Any, ctx: RequestContext
    ) -> Any:
        response = await call_next(request, ctx)

        declarations = self._policies.invalidations_for(type(request))
        if not declarations:
            return response

        command = type(request).__name__
        for declaration in declarations:
            for pattern in self.patterns_for(declaration):
                try:
                    removed = await self._store.remove_by_pattern(
                        pattern, raise_errors=True
                    )
                except Exception:
                    logger.exception(
                        "Error invalidating cache pattern %s after %s", pattern, command
                    )
                    continue
                self._metrics.incr(CACHE_INVALIDATIONS, tags={"command": command})
                logger.debug(
                    "%s invalidated %d cache keys matching %s", command, removed, pattern
                )
        return response
