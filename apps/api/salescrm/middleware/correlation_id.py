from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salescrm.core.context import correlation_scope


HEADER = "x-correlation-id"

# Echoed into logs and response headers, so only a conservative charset is accepted.
_ACCEPTED = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def accept_correlation_id(raw: str | None) -> str:
    if raw and _ACCEPTED.fullmatch(raw):
        return raw
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = accept_correlation_id(request.headers.get(HEADER))
        request.state.correlation_id = correlation_id

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        with correlation_scope(correlation_id):
            response = await call_next(request)
        response.headers[HEADER] = correlation_id
        return response
