from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.requests import Request

from salescrm.api.routes import router as api_router
from salescrm.core.context import RequestContextMiddleware, get_correlation_id
from salescrm.core.auth import get_token_service
from salescrm.core.config import get_settings
from salescrm.core.database import get_session_factory
from salescrm.logging import configure_logging
import salescrm.models  # noqa: F401
from salescrm.middleware.correlation_id import CorrelationIdMiddleware
from salescrm.middleware.rate_limit import MutationRateLimitMiddleware
from salescrm.middleware.request_logging import RequestLoggingMiddleware
from salescrm.otel import get_fastapi_server_request_hook, setup_otel
from salescrm.platform.security.errors import SecurityError
from salescrm.platform.security.permissions import PermissionCache, PermissionResolver


configure_logging()
logger = logging.getLogger("salescrm.lifecycle")


def build_permission_resolver() -> PermissionResolver:
    settings = get_settings()
    return PermissionResolver(
        PermissionCache(ttl_seconds=settings.permission_cache_ttl_seconds),
        get_session_factory(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Raises ConfigurationError for a weak signing secret outside development.
    get_token_service()
    logger.info("api.started", extra={"environment": get_settings().app_env})
    yield


async def handle_security_error(request: Request, exc: SecurityError) -> JSONResponse:
    correlation_id = (
        get_correlation_id()
        or getattr(request.state, "correlation_id", None)
        or str(uuid.uuid4())
    )
    if exc.status_code >= 500:
        logger.error("http.security_error", extra={"code": exc.code, "error": exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "details": exc.details,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


app = FastAPI(title="Sales CRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(MutationRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(SecurityError, handle_security_error)
app.include_router(api_router)
app.state.permission_resolver = build_permission_resolver()

setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
