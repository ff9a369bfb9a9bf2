"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for the query cache layer.
"""

from __future__ import annotations


class QueryCacheError(Exception):
    """Base error for the querycache package."""


class CacheBackendError(QueryCacheError):
    """Raised by a backend when the underlying cache service fails."""


class CacheSerializationError(QueryCacheError):
    """Raised when a value cannot be encoded to or decoded from the cache."""


class CacheConfigError(QueryCacheError):
    """Raised when cache settings or backend resolution are invalid."""


class HandlerNotFoundError(QueryCacheError):
    """Raised when no handler is registered for a dispatched request type."""

    def __init__(self, request_type: type) -> None:
        super().__init__(f"No handler registered for {request_type.__name__}")
        self.request_type = request_type
