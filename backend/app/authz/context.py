"""Request-scoped ability propagation.

The installed RequestContext lives in a ContextVar. asyncio copies the
current context when a task is created, so every coroutine and task spawned
inside an installed extent sees the same ability, and concurrent requests
never see each other's.
"""

import contextvars
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from backend.app.authz.rules import Ability
from backend.app.db.context import Caller, RequestContext

T = TypeVar("T")

_request_context: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "authz_request_context", default=None
)


@contextmanager
def installed(ability: Ability, caller: Caller | None = None) -> Iterator[RequestContext]:
    """Install an ability for the dynamic extent of the ``with`` block."""
    ctx = RequestContext(caller=caller, ability=ability)
    token = _request_context.set(ctx)
    try:
        yield ctx
    finally:
        _request_context.reset(token)


async def run_with_ability(
    ability: Ability,
    body: Callable[[], Awaitable[T]],
    caller: Caller | None = None,
) -> T:
    """Await ``body()`` with ``ability`` installed and return its result."""
    with installed(ability, caller):
        return await body()


def get_current_context() -> RequestContext | None:
    """Installed request context, or None outside any installed extent."""
    return _request_context.get()


def get_current_ability() -> Ability | None:
    """Installed ability, or None outside any installed extent.

    None means "no authorization context" and must be treated as deny by
    default, never as unrestricted.
    """
    ctx = _request_context.get()
    return ctx.ability if ctx is not None else None
