"""Per-request context.

The correlation id lives in a context variable so loggers and the audit
trail can read it without a request object. Everything else about the
caller is kept on ``request.state.context``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


DEFAULT_TENANT = "default"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_scope(value: str) -> Iterator[str]:
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


@dataclass
class RequestContext:
    correlation_id: str
    tenant_id: str
    actor_id: str | None = None
    role: str | None = None

    @property
    def request_id(self) -> str:
        return self.correlation_id


def request_context(request: Request) -> RequestContext | None:
    return getattr(request.state, "context", None)


def bind_actor(request: Request, actor_id: str, role: str) -> None:
    """Record the verified caller; a no-op outside the middleware stack."""
    context = request_context(request)
    if context is not None:
        context.actor_id = actor_id
        context.role = role


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        context = RequestContext(
            correlation_id=getattr(request.state, "correlation_id", None) or "",
            tenant_id=request.headers.get("x-tenant-id") or DEFAULT_TENANT,
        )
        request.state.context = context
        response = await call_next(request)
        response.headers["x-request-id"] = context.request_id
        return response
