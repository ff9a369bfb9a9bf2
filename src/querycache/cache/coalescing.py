"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/coalescing.py.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


def _retrieve(task: asyncio.Future[Any]) -> None:
    # Abandoned computations must not warn "exception was never retrieved".
    if not task.cancelled():
        task.exception()


class RequestCoalescer:
    """
    Deduplicate identical in-flight computations within one event loop.

    `run` returns ``(value, leader)``; exactly one concurrent caller per key is
    the leader and owns follow-up work such as the cache write. Each waiter is
    shielded from the others, so one cancelled caller does not cancel the
    shared computation while anyone else still awaits it. When the last waiter
    is cancelled the computation is cancelled too.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Future[Any]] = {}
        self._waiters: dict[str, int] = {}

    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(
        self, key: str, factory: Callable[[], Awaitable[T]]
    ) -> tuple[T, bool]:
        task = self._tasks.get(key)
        leader = task is None
        if task is None:
            task = asyncio.ensure_future(factory())
            task.add_done_callback(_retrieve)
            self._tasks[key] = task
            self._waiters[key] = 0

        self._waiters[key] += 1
        try:
            return await asyncio.shield(task), leader
        except asyncio.CancelledError:
            if self._waiters[key] == 1 and not task.done():
                task.cancel()
            raise
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._tasks[key]
