"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for cache observability.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from threading import Lock
from typing import Protocol

CACHE_HITS = "cache_hits"
CACHE_MISSES = "cache_misses"
CACHE_ERRORS = "cache_errors"
CACHE_INVALIDATIONS = "cache_invalidations"


class CacheMetrics(Protocol):
    """Minimal metrics interface for cache instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpCacheMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


class InMemoryCacheMetrics:
    """Counter sink kept in process memory for tests and local debugging."""

    def __init__(self) -> None:
        self._counts: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()
        self._lock = Lock()

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        key = (name, tuple(sorted((tags or {}).items())))
        with self._lock:
            self._counts[key] += value

    def total(self, name: str, **tags: str) -> int:
        """Sum one counter across every tag set containing `tags`."""
        wanted = set(tags.items())
        with self._lock:
            return sum(
                count
                for (metric, labels), count in self._counts.items()
                if metric == name and wanted <= set(labels)
            )


_DOCS = {
    CACHE_HITS: "Cache lookups served from the store",
    CACHE_MISSES: "Cache lookups that fell through to the handler",
    CACHE_ERRORS: "Backend or serialization faults absorbed by the store",
    CACHE_INVALIDATIONS: "Invalidation patterns purged after a command",
}


class PrometheusCacheMetrics:
    """
    Export cache counters through `prometheus_client`.

    Each metric name becomes one ``Counter`` whose label names are fixed by the
    first increment; the store and behaviors always pass the same tag keys for
    a given name. Requires the `metrics` extra.
    """

    def __init__(self, *, namespace: str = "querycache", registry=None) -> None:
        try:
            import prometheus_client
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusCacheMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._prometheus = prometheus_client
        self._registry = registry if registry is not None else prometheus_client.REGISTRY
        self._namespace = namespace
        self._counters: dict[str, tuple[tuple[str, ...], object]] = {}
        self._lock = Lock()

    def _counter(self, name: str, label_names: tuple[str, ...]):
        with self._lock:
            known = self._counters.get(name)
            if known is None:
                counter = self._prometheus.Counter(
                    name,
                    _DOCS.get(name, f"querycache counter {name}"),
                    labelnames=label_names,
                    namespace=self._namespace,
                    registry=self._registry,
                )
                known = self._counters[name] = (label_names, counter)
        if known[0] != label_names:
            raise ValueError(
                f"{name} was first recorded with tags {known[0]}, got {label_names}"
            )
        return known[1]

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        tags = tags or {}
        counter = self._counter(name, tuple(sorted(tags)))
        if tags:
            counter.labels(**{k: str(v) for k, v in tags.items()}).inc(value)
        else:
            counter.inc(value)
