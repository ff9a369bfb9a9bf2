from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import pytest

from querycache import (
    CacheBackendError,
    CacheEntryOptions,
    CacheInvalidationBehavior,
    CacheKeyGenerator,
    CacheStore,
    InMemoryCacheBackend,
    InMemoryCacheMetrics,
    InvalidationDeclaration,
    Mediator,
    PolicyRegistry,
    cacheable,
    invalidates_cache,
)


def run_async(coro):
    return asyncio.run(coro)


@cacheable(300)
@dataclass(frozen=True)
class ListPeopleQuery:
    pass


@cacheable(60, key_prefix="people-search")
@dataclass(frozen=True)
class SearchPeopleQuery:
    name: str


@invalidates_cache(ListPeopleQuery, SearchPeopleQuery)
@dataclass(frozen=True)
class CreatePersonCommand:
    name: str


@invalidates_cache(pattern="GetPersonQuery:*")
@invalidates_cache(ListPeopleQuery)
@dataclass(frozen=True)
class RenamePersonCommand:
    id: int


@invalidates_cache(invalidate_all=True)
@dataclass(frozen=True)
class ResetDirectoryCommand:
    pass


@dataclass(frozen=True)
class AuditCommand:
    pass


async def _seed(store: CacheStore, *keys: str) -> None:
    for key in keys:
        await store.set(key, ["cached"], CacheEntryOptions.from_seconds(60))


def _mediator(store: CacheStore, metrics=None, policies=None) -> Mediator:
    policies = policies or PolicyRegistry()
    behavior = CacheInvalidationBehavior(
        store,
        policies=policies,
        key_generator=CacheKeyGenerator(policies),
        metrics=metrics,
    )
    mediator = Mediator(behaviors=[behavior])
    mediator.register_handler(CreatePersonCommand, lambda cmd: "created")
    mediator.register_handler(RenamePersonCommand, lambda cmd: "renamed")
    mediator.register_handler(ResetDirectoryCommand, lambda cmd: "reset")
    mediator.register_handler(AuditCommand, lambda cmd: "audited")
    return mediator


def test_patterns_for_each_declaration_form():
    behavior = CacheInvalidationBehavior(CacheStore(InMemoryCacheBackend()))
    assert behavior.patterns_for(InvalidationDeclaration.everything()) == ["*"]
    assert behavior.patterns_for(InvalidationDeclaration.for_pattern("Get*")) == ["Get*"]
    assert behavior.patterns_for(
        InvalidationDeclaration.for_queries(ListPeopleQuery, SearchPeopleQuery)
    ) == ["ListPeopleQuery:*", "people-search:*"]


def test_query_type_targets_purge_every_variant_including_custom_prefixes():
    async def scenario() -> list[str]:
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(
            store,
            "ListPeopleQuery:",
            "ListPeopleQuery:user:alice:",
            "people-search:abc",
            "GetPersonQuery:xyz",
        )
        assert await _mediator(store).send(CreatePersonCommand(name="Linus")) == "created"
        return await backend.scan("*")

    assert run_async(scenario()) == ["GetPersonQuery:xyz"]


def test_stacked_declarations_all_run():
    async def scenario() -> list[str]:
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(store, "ListPeopleQuery:", "GetPersonQuery:a", "people-search:b")
        await _mediator(store).send(RenamePersonCommand(id=1))
        return await backend.scan("*")

    assert run_async(scenario()) == ["people-search:b"]


def test_invalidate_all_clears_the_cache():
    async def scenario() -> int:
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(store, "ListPeopleQuery:", "GetPersonQuery:a")
        await _mediator(store).send(ResetDirectoryCommand())
        return len(backend)

    assert run_async(scenario()) == 0


def test_commands_without_declarations_touch_nothing():
    async def scenario() -> int:
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(store, "ListPeopleQuery:")
        assert await _mediator(store).send(AuditCommand()) == "audited"
        return len(backend)

    assert run_async(scenario()) == 1


def test_failed_command_does_not_invalidate():
    async def scenario() -> int:
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(store, "ListPeopleQuery:")
        mediator = _mediator(store)

        def fail(cmd: CreatePersonCommand) -> str:
            raise ValueError("duplicate name")

        mediator.register_handler(CreatePersonCommand, fail, overwrite=True)
        with pytest.raises(ValueError, match="duplicate name"):
            await mediator.send(CreatePersonCommand(name="Ada"))
        return len(backend)

    assert run_async(scenario()) == 1


class _PartlyBrokenStore(CacheStore):
    def __init__(self, backend) -> None:
        super().__init__(backend)
        self.attempted: list[str] = []

    async def remove_by_pattern(self, pattern: str, *, raise_errors: bool = False) -> int:
        self.attempted.append(pattern)
        if pattern.startswith("ListPeopleQuery"):
            raise RuntimeError("purge exploded")
        return await super().remove_by_pattern(pattern, raise_errors=raise_errors)


def test_purge_failures_are_logged_and_remaining_targets_still_run(caplog):
    async def scenario() -> tuple[str, _PartlyBrokenStore, InMemoryCacheMetrics]:
        store = _PartlyBrokenStore(InMemoryCacheBackend())
        await _seed(store, "ListPeopleQuery:", "GetPersonQuery:a")
        metrics = InMemoryCacheMetrics()
        response = await _mediator(store, metrics).send(RenamePersonCommand(id=1))
        return response, store, metrics

    with caplog.at_level(logging.ERROR, logger="querycache.pipeline.invalidation"):
        response, store, metrics = run_async(scenario())

    assert response == "renamed"
    assert store.attempted == ["GetPersonQuery:*", "ListPeopleQuery:*"]
    assert "Error invalidating cache pattern ListPeopleQuery:*" in caplog.text
    assert metrics.total("cache_invalidations", command="RenamePersonCommand") == 1


def test_explicit_registry_declarations_are_honoured():
    @dataclass(frozen=True)
    class ArchivePersonCommand:
        id: int

    async def scenario() -> list[str]:
        policies = PolicyRegistry()
        policies.register_invalidation(
            ArchivePersonCommand, InvalidationDeclaration.for_pattern("GetPersonQuery:*")
        )
        backend = InMemoryCacheBackend()
        store = CacheStore(backend)
        await _seed(store, "ListPeopleQuery:", "GetPersonQuery:a")
        mediator = _mediator(store, policies=policies)
        mediator.register_handler(ArchivePersonCommand, lambda cmd: None)
        await mediator.send(ArchivePersonCommand(id=1))
        return await backend.scan("*")

    assert run_async(scenario()) == ["ListPeopleQuery:"]


class _UnscannableBackend(InMemoryCacheBackend):
    backend_id = "unscannable"

    async def scan(self, pattern):
        raise ConnectionError("cache host unreachable")


def test_backend_outage_during_purge_is_logged_and_not_counted(caplog):
    async def scenario() -> tuple[str, InMemoryCacheMetrics]:
        metrics = InMemoryCacheMetrics()
        store = CacheStore(_UnscannableBackend(), metrics=metrics)
        await _seed(store, "ListPeopleQuery:")
        response = await _mediator(store, metrics).send(CreatePersonCommand(name="Linus"))
        return response, metrics

    with caplog.at_level(logging.ERROR, logger="querycache.pipeline.invalidation"):
        response, metrics = run_async(scenario())

    assert response == "created"
    assert "Error invalidating cache pattern ListPeopleQuery:* after CreatePersonCommand" in caplog.text
    assert "Error invalidating cache pattern people-search:*" in caplog.text
    assert metrics.total("cache_invalidations") == 0
    assert metrics.total("cache_errors", backend="unscannable", op="remove_by_pattern") == 2


def test_store_purge_reports_failures_only_when_asked():
    async def scenario() -> None:
        store = CacheStore(_UnscannableBackend())
        assert await store.remove_by_pattern("ListPeopleQuery:*") == 0
        with pytest.raises(CacheBackendError, match="ListPeopleQuery"):
            await store.remove_by_pattern("ListPeopleQuery:*", raise_errors=True)

    run_async(scenario())
