from __future__ import annotations

import asyncio
from fnmatch import fnmatchcase

import pytest

from querycache import (
    CacheBackendError,
    CacheEntryOptions,
    CacheStore,
    RedisCacheBackend,
)


def run_async(coro):
    return asyncio.run(coro)


class _FakePipeline:
    def __init__(self, redis: "_FakeRedis") -> None:
        self._redis = redis
        self._ops: list[tuple[str, str, int | None]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def set(self, key, value, px=None):
        self._ops.append((key, value, px))
        return self

    async def execute(self):
        for key, value, px in self._ops:
            await self._redis.set(key, value, px=px)
        return [True] * len(self._ops)


class _FakeRedis:
    """Subset of the redis.asyncio client used by RedisCacheBackend."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttl_ms: dict[str, int] = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, px=None):
        self.data[key] = value.encode("utf-8")
        if px is None:
            self.ttl_ms.pop(key, None)
        else:
            self.ttl_ms[key] = px
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttl_ms.pop(key, None)
        return removed

    async def exists(self, key):
        return int(key in self.data)

    async def pexpire(self, key, ms):
        if key not in self.data:
            return False
        self.ttl_ms[key] = ms
        return True

    async def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatchcase(key, match):
                yield key.encode("utf-8")

    async def mget(self, keys):
        return [self.data.get(key) for key in keys]

    def pipeline(self, transaction=True):
        return _FakePipeline(self)

    async def aclose(self):
        self.closed = True


class _DownRedis(_FakeRedis):
    async def get(self, key):
        raise ConnectionError("Connection refused")

    async def set(self, key, value, px=None):
        raise ConnectionError("Connection refused")


def test_keys_are_namespaced_and_ttls_forwarded_in_ms():
    async def scenario() -> None:
        fake = _FakeRedis()
        backend = RedisCacheBackend(fake, namespace="tests:cache")
        await backend.set("ListPeopleQuery:", "[]", ttl_s=300)
        await backend.set("forever", "1", ttl_s=None)

        assert fake.data == {"tests:cache:ListPeopleQuery:": b"[]", "tests:cache:forever": b"1"}
        assert fake.ttl_ms == {"tests:cache:ListPeopleQuery:": 300_000}
        assert await backend.get("ListPeopleQuery:") == "[]"
        assert await backend.exists("forever")

    run_async(scenario())


def test_scan_strips_namespace_and_stays_inside_it():
    async def scenario() -> None:
        fake = _FakeRedis()
        fake.data["other-app:ListPeopleQuery:"] = b"[]"
        backend = RedisCacheBackend(fake, namespace="qc")
        await backend.set("ListPeopleQuery:", "[]", ttl_s=None)
        await backend.set("ListPeopleQuery:user:1:x", "[]", ttl_s=None)

        assert sorted(await backend.scan("*")) == [
            "ListPeopleQuery:",
            "ListPeopleQuery:user:1:x",
        ]
        assert await backend.delete(*await backend.scan("*")) == 2
        assert list(fake.data) == ["other-app:ListPeopleQuery:"]

    run_async(scenario())


def test_batch_calls_use_mget_and_pipeline():
    async def scenario() -> None:
        fake = _FakeRedis()
        backend = RedisCacheBackend(fake, namespace="")
        await backend.set_many({"a": "1", "b": "2"}, ttl_s=0.0004)
        assert fake.ttl_ms == {"a": 1, "b": 1}
        assert await backend.get_many(["a", "b", "c"]) == {"a": "1", "b": "2", "c": None}
        assert await backend.get_many([]) == {}

    run_async(scenario())


def test_client_errors_become_backend_errors():
    async def scenario() -> None:
        backend = RedisCacheBackend(_DownRedis())
        with pytest.raises(CacheBackendError, match="redis get failed"):
            await backend.get("k")
        with pytest.raises(CacheBackendError, match="redis set failed"):
            await backend.set("k", "v", ttl_s=1)

    run_async(scenario())


def test_store_on_redis_round_trip_and_sliding_refresh():
    async def scenario() -> None:
        fake = _FakeRedis()
        store = CacheStore(RedisCacheBackend(fake, namespace="qc"))
        await store.set("GetPersonQuery:abc", {"id": 1}, CacheEntryOptions.with_sliding(30))
        fake.ttl_ms["qc:GetPersonQuery:abc"] = 5

        assert await store.get("GetPersonQuery:abc") == {"id": 1}
        assert fake.ttl_ms["qc:GetPersonQuery:abc"] == 30_000

        assert await store.remove_by_pattern("GetPersonQuery:*") == 1
        await store.close()
        assert fake.closed

    run_async(scenario())


def test_store_on_unreachable_redis_degrades_to_miss():
    async def scenario() -> None:
        store = CacheStore(RedisCacheBackend(_DownRedis()))
        assert await store.set("k", "v") is False
        assert await store.get("k") is None

    run_async(scenario())
