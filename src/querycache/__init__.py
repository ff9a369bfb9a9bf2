"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Read-through query caching for request/response dispatch pipelines.

Quick start::

    from dataclasses import dataclass

    from querycache import (
        CacheSettings,
        InMemoryCacheBackend,
        CacheStore,
        build_cached_mediator,
        cacheable,
        invalidates_cache,
    )

    @cacheable(duration_s=300)
    @dataclass(frozen=True)
    class ListPeopleQuery:
        pass

    @invalidates_cache(ListPeopleQuery)
    @dataclass(frozen=True)
    class CreatePersonCommand:
        name: str

    mediator = build_cached_mediator(CacheStore(InMemoryCacheBackend()))
    mediator.register_handler(ListPeopleQuery, list_people)
    mediator.register_handler(CreatePersonCommand, create_person)

    people = await mediator.send(ListPeopleQuery())
"""

from .cache import (
    CacheBackend,
    CacheEntryOptions,
    CacheItemPriority,
    CacheStore,
    InMemoryCacheBackend,
    KeyIndex,
    RedisCacheBackend,
    RequestCoalescer,
    TieredCacheBackend,
    create_cache_backend,
    list_cache_backends,
    register_cache_backend,
)
from .errors import (
    CacheBackendError,
    CacheConfigError,
    CacheSerializationError,
    HandlerNotFoundError,
    QueryCacheError,
)
from .factory import create_cache_store, create_cache_store_from_env
from .keys import CacheKeyGenerator, canonicalize
from .metrics import (
    CacheMetrics,
    InMemoryCacheMetrics,
    NoOpCacheMetrics,
    PrometheusCacheMetrics,
)
from .pipeline import (
    CacheInvalidationBehavior,
    CachingBehavior,
    Mediator,
    PipelineBehavior,
    RequestContext,
    build_cached_mediator,
)
from .policy import (
    CacheablePolicy,
    InvalidationDeclaration,
    PolicyRegistry,
    cacheable,
    invalidates_cache,
)
from .settings import CacheSettings

__all__ = [
    "CacheBackend",
    "CacheEntryOptions",
    "CacheItemPriority",
    "CacheStore",
    "KeyIndex",
    "RequestCoalescer",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "TieredCacheBackend",
    "register_cache_backend",
    "create_cache_backend",
    "list_cache_backends",
    "QueryCacheError",
    "CacheBackendError",
    "CacheSerializationError",
    "CacheConfigError",
    "HandlerNotFoundError",
    "create_cache_store",
    "create_cache_store_from_env",
    "CacheKeyGenerator",
    "canonicalize",
    "CacheMetrics",
    "NoOpCacheMetrics",
    "InMemoryCacheMetrics",
    "PrometheusCacheMetrics",
    "Mediator",
    "PipelineBehavior",
    "RequestContext",
    "CachingBehavior",
    "CacheInvalidationBehavior",
    "build_cached_mediator",
    "CacheablePolicy",
    "InvalidationDeclaration",
    "PolicyRegistry",
    "cacheable",
    "invalidates_cache",
    "CacheSettings",
]
