from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salescrm.core.auth import bearer_token, get_token_service
from salescrm.core.config import get_settings
from salescrm.core.context import get_correlation_id


MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
WINDOW_SECONDS = 60.0
ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    retry_after: int = 0


class MutationRateLimiter:
    """Token buckets keyed by (actor, route group), refilled continuously."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], tuple[float, float]] = {}

    def acquire(self, actor_id: str, group: str, per_window: int) -> Decision:
        if per_window <= 0:
            return Decision(allowed=False, retry_after=int(WINDOW_SECONDS))

        rate = per_window / WINDOW_SECONDS
        now = self._clock()
        with self._lock:
            tokens, updated_at = self._buckets.get((actor_id, group), (float(per_window), now))
            tokens = min(float(per_window), tokens + (now - updated_at) * rate)
            if tokens < 1.0:
                self._buckets[(actor_id, group)] = (tokens, now)
                return Decision(allowed=False, retry_after=max(1, math.ceil((1.0 - tokens) / rate)))
            self._buckets[(actor_id, group)] = (tokens - 1.0, now)
        return Decision(allowed=True)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = MutationRateLimiter()


def reset_rate_limiter() -> None:
    _limiter.reset()


def route_group(path: str) -> str:
    # /api/<group>/... ; anything shallower shares the "api" bucket.
    parts = [part for part in path.split("/") if part]
    return parts[1] if len(parts) > 1 else "api"


def _actor_key(request: Request) -> str:
    token = bearer_token(request)
    principal = get_token_service().verify(token) if token else None
    return principal.actor_id if principal is not None else ANONYMOUS


def _limited_response(request: Request, retry_after: int) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", "")
    return JSONResponse(
        status_code=429,
        content={
            "code": "RATE_LIMITED",
            "message": "Too many requests",
            "details": {"retry_after_seconds": retry_after},
            "correlation_id": correlation_id,
        },
        headers={"Retry-After": str(retry_after), "X-Correlation-Id": correlation_id},
    )


class MutationRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if (
            settings.rate_limit_disabled
            or request.method.upper() not in MUTATING_METHODS
            or not request.url.path.startswith("/api/")
        ):
            return await call_next(request)

        decision = _limiter.acquire(
            _actor_key(request),
            route_group(request.url.path),
            settings.rate_limit_mutations_per_minute,
        )
        if not decision.allowed:
            return _limited_response(request, decision.retry_after)
        return await call_next(request)
