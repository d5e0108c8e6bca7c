"""Application-side half of the Authorization Code Grant.

A Callback receives the token once CSRF verification and the code exchange
have both succeeded, and produces the response sent to the browser (set a
login cookie, look up the user, redirect somewhere...). Plain functions work
too:

    async def on_login(request: web.Request, token: TokenResponse) -> web.Response:
        ...
        raise web.HTTPFound("/")

    setup(app, BasicAdapter(), on_login, config, "/auth/github")
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from aiohttp import web

from codegrant.token import TokenResponse

CallbackFunction = Callable[
    [web.Request, TokenResponse],
    web.StreamResponse | Awaitable[web.StreamResponse],
]


@runtime_checkable
class Callback(Protocol):
    """Consumes a freshly obtained token and returns the final response."""

    async def callback(
        self, request: web.Request, token: TokenResponse
    ) -> web.StreamResponse:
        ...


class FunctionCallback:
    """Adapts a plain ``fn(request, token)`` function to the Callback interface.

    Both regular and ``async`` functions are accepted.
    """

    def __init__(self, func: CallbackFunction):
        self._func = func

    async def callback(
        self, request: web.Request, token: TokenResponse
    ) -> web.StreamResponse:
        result = self._func(request, token)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FunctionCallback({name})"


def as_callback(obj: Callback | CallbackFunction) -> Callback:
    """Return ``obj`` as a Callback, wrapping plain functions.

    Raises:
        TypeError: If ``obj`` is neither a Callback nor callable
    """
    if isinstance(obj, Callback):
        return obj
    if callable(obj):
        return FunctionCallback(obj)
    raise TypeError(f"Expected a Callback or a callable, got {type(obj).__name__}")
