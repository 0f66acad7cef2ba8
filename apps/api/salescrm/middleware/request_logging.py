from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salescrm.core.context import request_context
from salescrm.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("salescrm.request")


def _access_fields(request: Request, status_code: int, started: float) -> dict[str, Any]:
    duration = time.perf_counter() - started
    path = resolve_http_path_label(request)
    observe_http_request(method=request.method, path=path, status=status_code, duration=duration)

    fields: dict[str, Any] = {
        "method": request.method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration * 1000, 2),
    }
    context = request_context(request)
    if context is not None:
        fields["tenant_id"] = context.tenant_id
        fields["actor_id"] = context.actor_id
        fields["role"] = context.role
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log plus the HTTP request metrics.

    The path label is resolved after the call so it carries the matched
    route template rather than the raw URL.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error("http.error", exc_info=True, extra=_access_fields(request, 500, started))
            raise
        logger.info("http.request", extra=_access_fields(request, response.status_code, started))
        return response
