"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cacheable policies and invalidation declarations for request types.

Declarations are attached to request classes with the `cacheable` and
`invalidates_cache` decorators, or registered explicitly on a
`PolicyRegistry` at startup. Both are inherited by subclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Any, TypeVar

from .cache.base import CacheEntryOptions

DEFAULT_DURATION_S = 300

_CACHEABLE_ATTR = "__querycache_cacheable__"
_INVALIDATES_ATTR = "__querycache_invalidates__"
_GLOB_CHARS = frozenset("*?[]\\")

C = TypeVar("C", bound=type)


@dataclass(frozen=True, slots=True)
class CacheablePolicy:
    """Declares a query type cacheable for `duration_s` seconds."""

    duration_s: int = DEFAULT_DURATION_S
    vary_by_identity: bool = False
    key_prefix: str | None = None

    def __post_init__(self) -> None:
        if self.duration_s <= 0:
            object.__setattr__(self, "duration_s", DEFAULT_DURATION_S)
        prefix = self.key_prefix
        if prefix is not None:
            prefix = prefix.strip().rstrip(":")
            if _GLOB_CHARS.intersection(prefix):
                raise ValueError(f"key_prefix must not contain glob characters: {prefix!r}")
            object.__setattr__(self, "key_prefix", prefix or None)

    def entry_options(self) -> CacheEntryOptions:
        """Absolute-from-now expiration for responses cached under this policy."""
        return CacheEntryOptions.from_seconds(self.duration_s)


@dataclass(frozen=True, slots=True)
class InvalidationDeclaration:
    """
    What a command purges after it succeeds.

    Exactly one form is populated: explicit query types, a glob pattern, or
    `invalidate_all`.
    """

    query_types: tuple[type, ...] = ()
    pattern: str | None = None
    invalidate_all: bool = False

    def __post_init__(self) -> None:
        forms = sum((bool(self.query_types), self.pattern is not None, self.invalidate_all))
        if forms != 1:
            raise ValueError(
                "InvalidationDeclaration needs exactly one of query_types, pattern "
                "or invalidate_all"
            )
        if self.pattern is not None and not self.pattern.strip():
            raise ValueError("invalidation pattern must be non-empty")

    @classmethod
    def for_queries(cls, *query_types: type) -> InvalidationDeclaration:
        return cls(query_types=tuple(query_types))

    @classmethod
    def for_pattern(cls, pattern: str) -> InvalidationDeclaration:
        return cls(pattern=pattern)

    @classmethod
    def everything(cls) -> InvalidationDeclaration:
        return cls(invalidate_all=True)


def cacheable(
    duration_s: int = DEFAULT_DURATION_S,
    *,
    vary_by_identity: bool = False,
    key_prefix: str | None = None,
):
    """Class decorator marking a query type cacheable."""
    policy = CacheablePolicy(
        duration_s=duration_s,
        vary_by_identity=vary_by_identity,
        key_prefix=key_prefix,
    )

    def decorator(cls: C) -> C:
        setattr(cls, _CACHEABLE_ATTR, policy)
        return cls

    return decorator


def invalidates_cache(
    *query_types: type,
    pattern: str | None = None,
    invalidate_all: bool = False,
):
    """
    Class decorator declaring what a command invalidates.

    May be stacked; declarations keep their top-to-bottom source order.
    """
    declaration = InvalidationDeclaration(
        query_types=tuple(query_types),
        pattern=pattern,
        invalidate_all=invalidate_all,
    )

    def decorator(cls: C) -> C:
        # Decorators apply bottom-up, so prepend to keep source order.
        own = cls.__dict__.get(_INVALIDATES_ATTR, ())
        setattr(cls, _INVALIDATES_ATTR, (declaration, *own))
        return cls

    return decorator


class PolicyRegistry:
    """
    Lookup of cache declarations by request type.

    The cacheable policy is the most-derived declaration along the MRO; on one
    class an explicit registration takes precedence over decorator metadata.
    Invalidation declarations from both sources are combined.
    """

    def __init__(self) -> None:
        self._cacheable: dict[type, CacheablePolicy] = {}
        self._invalidations: dict[type, list[InvalidationDeclaration]] = {}
        self._lock = Lock()

    def register_cacheable(
        self,
        request_type: type,
        policy: CacheablePolicy | None = None,
        **kwargs: Any,
    ) -> CacheablePolicy:
        policy = policy or CacheablePolicy(**kwargs)
        with self._lock:
            self._cacheable[request_type] = policy
        return policy

    def register_invalidation(
        self, request_type: type, *declarations: InvalidationDeclaration
    ) -> None:
        if not declarations:
            raise ValueError("register_invalidation needs at least one declaration")
        with self._lock:
            self._invalidations.setdefault(request_type, []).extend(declarations)

    def cacheable_policy_for(self, request_type: type) -> CacheablePolicy | None:
        with self._lock:
            for klass in request_type.__mro__:
                policy = self._cacheable.get(klass) or klass.__dict__.get(_CACHEABLE_ATTR)
                if policy is not None:
                    return policy
        return None

    def is_cacheable(self, request_type: type) -> bool:
        return self.cacheable_policy_for(request_type) is not None

    def invalidations_for(self, request_type: type) -> tuple[InvalidationDeclaration, ...]:
        found: list[InvalidationDeclaration] = []
        with self._lock:
            for klass in request_type.__mro__:
                found.extend(klass.__dict__.get(_INVALIDATES_ATTR, ()))
                found.extend(self._invalidations.get(klass, ()))
        return tuple(found)
