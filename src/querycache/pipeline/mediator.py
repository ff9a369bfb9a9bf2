"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request dispatcher with an ordered chain of pipeline behaviors.
"""

from __future__ import annotations

import inspect
import typing
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import HandlerNotFoundError
from ..types import JSONValue


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Per-dispatch context passed along the behavior chain."""

    principal_id: str | None = None
    response_type: Any = Any
    metadata: dict[str, JSONValue] = field(default_factory=dict)


RequestNext = Callable[[Any, RequestContext], Awaitable[Any]]
RequestHandler = Callable[[Any], Any]


class PipelineBehavior(Protocol):
    """Behavior protocol wrapping every dispatched request."""

    async def __call__(
        self, call_next: RequestNext, request: Any, ctx: RequestContext
    ) -> Any: ...


@dataclass(frozen=True, slots=True)
class _Registration:
    handler: RequestHandler
    response_type: Any


def _return_annotation(handler: RequestHandler) -> Any:
    target = handler if inspect.isroutine(handler) else getattr(handler, "__call__", handler)
    try:
        hints = typing.get_type_hints(target)
    except Exception:
        return Any
    return hints.get("return", Any)


def _link(behavior: PipelineBehavior, call_next: RequestNext) -> RequestNext:
    async def _call(request: Any, ctx: RequestContext) -> Any:
        return await behavior(call_next, request, ctx)

    return _call


class Mediator:
    """
    Dispatch requests to their handler through ordered behaviors.

    `behaviors[0]` is the outermost stage. Handlers may be sync or async
    callables taking the request. Handler exceptions propagate unchanged.
    """

    def __init__(self, *, behaviors: list[PipelineBehavior] | None = None) -> None:
        self._handlers: dict[type, _Registration] = {}
        self._behaviors: list[PipelineBehavior] = list(behaviors or [])

    @property
    def behaviors(self) -> tuple[PipelineBehavior, ...]:
        return tuple(self._behaviors)

    def add_behavior(self, behavior: PipelineBehavior) -> None:
        """Append a behavior as the new innermost stage."""
        self._behaviors.append(behavior)

    def register_handler(
        self,
        request_type: type,
        handler: RequestHandler,
        *,
        response_type: Any = None,
        overwrite: bool = False,
    ) -> None:
        """
        Bind `handler` to `request_type`.

        `response_type` decodes cached responses; it defaults to the handler's
        return annotation. Cacheable requests whose handler has neither are
        dispatched without caching.
        """
        if request_type in self._handlers and not overwrite:
            raise ValueError(f"Handler already registered for {request_type.__name__}")
        if response_type is None:
            response_type = _return_annotation(handler)
        self._handlers[request_type] = _Registration(handler, response_type)

    def handler(self, request_type: type, *, response_type: Any = None):
        """Decorator form of `register_handler`."""

        def decorator(fn: RequestHandler) -> RequestHandler:
            self.register_handler(request_type, fn, response_type=response_type)
            return fn

        return decorator

    def _resolve(self, request_type: type) -> _Registration:
        for klass in request_type.__mro__:
            registration = self._handlers.get(klass)
            if registration is not None:
                return registration
        raise HandlerNotFoundError(request_type)

    async def send(
        self,
        request: Any,
        *,
        principal_id: str | None = None,
        metadata: dict[str, JSONValue] | None = None,
    ) -> Any:
        """Dispatch one request and return the handler's (or cache's) response."""
        registration = self._resolve(type(request))
        ctx = RequestContext(
            principal_id=principal_id,
            response_type=registration.response_type,
            metadata=dict(metadata or {}),
        )

        async def _handle(req: Any, _ctx: RequestContext) -> Any:
            result = registration.handler(req)
            if inspect.isawaitable(result):
                result = await result
            return result

        call: RequestNext = _handle
        for behavior in reversed(self._behaviors):
            call = _link(behavior, call)
        return await call(request, ctx)
