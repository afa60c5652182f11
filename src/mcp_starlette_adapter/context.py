"""Request-scoped invocation context.

The message endpoint knows about HTTP; tool handlers do not. Between them sits
the protocol engine, whose dispatch is opaque to us. The context carrier bridges
that gap: the message endpoint enters :func:`invocation_scope` with the POST
request's headers, the transport attaches the active context to the message it
hands to the engine, and the tool-call handler re-enters the scope right before
the user's handler runs.

Scopes are backed by a :class:`contextvars.ContextVar`, so each task sees its
own value and concurrent requests never observe each other's headers.
"""

from __future__ import annotations as _annotations

import contextvars
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class InvocationContext:
    """Metadata of the HTTP request that delivered the message being processed.

    Attributes:
        headers: request headers, names lower-cased as delivered by ASGI
        extra: additional ambient values a host may want to pass along
    """

    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], **extra: Any) -> InvocationContext:
        """Build a context from request headers.

        Repeated headers (which starlette's ``Headers.items()`` yields one by one)
        are joined with ", ".
        """
        merged: dict[str, str] = {}
        for key, value in headers.items():
            key = key.lower()
            merged[key] = f"{merged[key]}, {value}" if key in merged else value
        return cls(
            headers=MappingProxyType(merged),
            extra=MappingProxyType(dict(extra)),
        )

    def get_header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)


_EMPTY_CONTEXT = InvocationContext()

_invocation_context: contextvars.ContextVar[InvocationContext | None] = contextvars.ContextVar(
    "invocation_context", default=None
)


def get_invocation_context() -> InvocationContext:
    """Return the active invocation context, or an empty one outside any scope."""
    return _invocation_context.get() or _EMPTY_CONTEXT


def has_invocation_context() -> bool:
    return _invocation_context.get() is not None


@contextmanager
def invocation_scope(context: InvocationContext) -> Iterator[InvocationContext]:
    """Make ``context`` the active invocation context for the enclosed block."""
    token = _invocation_context.set(context)
    try:
        yield context
    finally:
        _invocation_context.reset(token)


async def run_with_context(
    context: InvocationContext,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)`` with ``context`` active."""
    with invocation_scope(context):
        return await fn(*args, **kwargs)
