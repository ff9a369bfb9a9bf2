"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Dispatch pipeline with caching and cache-invalidation behaviors.
"""

from __future__ import annotations

from ..cache.store import CacheStore
from ..keys import CacheKeyGenerator
from ..metrics import CacheMetrics
from ..policy import PolicyRegistry
from ..settings import CacheSettings
from .caching import CachingBehavior
from .invalidation import CacheInvalidationBehavior
from .mediator import (
    Mediator,
    PipelineBehavior,
    RequestContext,
    RequestHandler,
    RequestNext,
)


def build_cached_mediator(
    store: CacheStore,
    *,
    policies: PolicyRegistry | None = None,
    settings: CacheSettings | None = None,
    metrics: CacheMetrics | None = None,
) -> Mediator:
    """Mediator with invalidation as the outer stage and caching inside it."""
    settings = settings or CacheSettings()
    policies = policies or PolicyRegistry()
    keys = CacheKeyGenerator(policies)
    return Mediator(
        behaviors=[
            CacheInvalidationBehavior(
                store, policies=policies, key_generator=keys, metrics=metrics
            ),
            CachingBehavior(
                store,
                policies=policies,
                key_generator=keys,
                enabled=settings.enabled,
                coalesce_misses=settings.coalesce_misses,
            ),
        ]
    )


__all__ = [
    "Mediator",
    "PipelineBehavior",
    "RequestContext",
    "RequestHandler",
    "RequestNext",
    "CachingBehavior",
    "CacheInvalidationBehavior",
    "build_cached_mediator",
]
