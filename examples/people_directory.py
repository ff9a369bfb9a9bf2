"""
people_directory.py: Cached people queries with command-driven invalidation.

Demonstrates a cacheable list query, a per-id query and a create command that
purges the list cache once it succeeds.

Usage:
    python examples/people_directory.py
    QUERYCACHE_BACKEND=redis QUERYCACHE_REDIS_URL=redis://localhost:6379/0 \
        python examples/people_directory.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel

from querycache import (
    PolicyRegistry,
    build_cached_mediator,
    cacheable,
    create_cache_store_from_env,
    invalidates_cache,
)


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
@invalidates_cache(pattern="GetPersonQuery:*")
@dataclass(frozen=True)
class CreatePersonCommand:
    name: str


PEOPLE: dict[int, Person] = {
    1: Person(id=1, name="Ada"),
    2: Person(id=2, name="Grace"),
}


async def list_people(query: ListPeopleQuery) -> list[Person]:
    print("  handler: listing people")
    return list(PEOPLE.values())


async def get_person(query: GetPersonQuery) -> Person | None:
    print(f"  handler: loading person {query.id}")
    return PEOPLE.get(query.id)


async def create_person(command: CreatePersonCommand) -> Person:
    person = Person(id=max(PEOPLE) + 1, name=command.name)
    PEOPLE[person.id] = person
    return person


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    store = create_cache_store_from_env()
    mediator = build_cached_mediator(store, policies=PolicyRegistry())
    mediator.register_handler(ListPeopleQuery, list_people)
    mediator.register_handler(GetPersonQuery, get_person)
    mediator.register_handler(CreatePersonCommand, create_person)

    print("call 1:", [p.name for p in await mediator.send(ListPeopleQuery())])
    print("call 2:", [p.name for p in await mediator.send(ListPeopleQuery())])
    await mediator.send(CreatePersonCommand(name="Linus"))
    print("call 3:", [p.name for p in await mediator.send(ListPeopleQuery())])

    print("alice:", await mediator.send(GetPersonQuery(id=1), principal_id="alice"))
    print("bob:  ", await mediator.send(GetPersonQuery(id=1), principal_id="bob"))

    await store.close()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
