from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel

from querycache import (
    CacheSettings,
    InMemoryCacheBackend,
    InMemoryCacheMetrics,
    build_cached_mediator,
    cacheable,
    create_cache_store,
    invalidates_cache,
    register_cache_backend,
)


def run_async(coro):
    return asyncio.run(coro)


class Person(BaseModel):
    id: int
    name: str


@cacheable(duration_s=300)
@dataclass(frozen=True)
class ListPeopleQuery:
    pass


@cacheable(duration_s=60)
@dataclass(frozen=True)
class GetPersonQuery:
    id: int


@invalidates_cache(ListPeopleQuery)
@dataclass(frozen=True)
class CreatePersonCommand:
    name: str


class PeopleDirectory:
    def __init__(self) -> None:
        self.people = {1: Person(id=1, name="A"), 2: Person(id=2, name="B")}
        self.list_calls = 0
        self.get_calls = 0

    async def list_people(self, query: ListPeopleQuery) -> list[Person]:
        self.list_calls += 1
        return list(self.people.values())

    async def get_person(self, query: GetPersonQuery) -> Person | None:
        self.get_calls += 1
        return self.people.get(query.id)

    async def create_person(self, command: CreatePersonCommand) -> Person:
        person = Person(id=max(self.people) + 1, name=command.name)
        self.people[person.id] = person
        return person


def _wire(settings: CacheSettings, directory: PeopleDirectory, metrics=None):
    store = create_cache_store(settings, metrics=metrics)
    mediator = build_cached_mediator(store, settings=settings, metrics=metrics)
    mediator.register_handler(ListPeopleQuery, directory.list_people)
    mediator.register_handler(GetPersonQuery, directory.get_person)
    mediator.register_handler(CreatePersonCommand, directory.create_person)
    return store, mediator


def test_list_is_cached_until_a_create_command_invalidates_it():
    async def scenario() -> None:
        directory = PeopleDirectory()
        metrics = InMemoryCacheMetrics()
        store, mediator = _wire(CacheSettings(), directory, metrics)

        first = await mediator.send(ListPeopleQuery())
        assert [p.name for p in first] == ["A", "B"]
        assert await store.exists("ListPeopleQuery:")

        second = await mediator.send(ListPeopleQuery())
        assert [p.name for p in second] == ["A", "B"]
        assert directory.list_calls == 1

        await mediator.send(CreatePersonCommand(name="C"))
        assert not await store.exists("ListPeopleQuery:")

        third = await mediator.send(ListPeopleQuery())
        assert [p.name for p in third] == ["A", "B", "C"]
        assert directory.list_calls == 2

        assert metrics.total("cache_hits") == 1
        assert metrics.total("cache_misses") == 2
        assert metrics.total("cache_invalidations", command="CreatePersonCommand") == 1
        await store.close()

    run_async(scenario())


def test_identity_is_irrelevant_without_vary_by_identity():
    async def scenario() -> None:
        directory = PeopleDirectory()
        store, mediator = _wire(CacheSettings(), directory)

        alice = await mediator.send(GetPersonQuery(id=1), principal_id="alice")
        bob = await mediator.send(GetPersonQuery(id=1), principal_id="bob")
        assert alice == bob == Person(id=1, name="A")
        assert directory.get_calls == 1
        await store.close()

    run_async(scenario())


def test_scenario_without_pattern_scan_uses_key_index():
    async def scenario() -> None:
        directory = PeopleDirectory()
        store, mediator = _wire(CacheSettings(backend="no-scan-scenario"), directory)
        assert isinstance(store.backend, InMemoryCacheBackend)
        assert store.key_index is not None

        await mediator.send(ListPeopleQuery())
        await mediator.send(CreatePersonCommand(name="C"))
        assert [p.name for p in await mediator.send(ListPeopleQuery())] == ["A", "B", "C"]
        assert directory.list_calls == 2

    register_cache_backend(
        "no-scan-scenario",
        lambda settings, **_: InMemoryCacheBackend(native_scan=False),
        overwrite=True,
    )
    run_async(scenario())
