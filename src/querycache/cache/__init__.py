"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/__init__.py.
"""

from .base import CacheBackend, CacheEntryOptions, CacheItemPriority
from .coalescing import RequestCoalescer
from .memory import InMemoryCacheBackend
from .redis import RedisCacheBackend
from .registry import (
    create_cache_backend,
    list_cache_backends,
    register_cache_backend,
)
from .store import CacheStore, KeyIndex
from .tiered import TieredCacheBackend

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
]
