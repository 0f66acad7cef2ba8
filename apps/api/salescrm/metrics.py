from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


# Requests that match no route share one label so scanners cannot blow up cardinality.
UNMATCHED_PATH = "<unmatched>"

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by route template and status",
    ["method", "path", "status"],
)
HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency by route template",
    ["method", "path"],
)
PERMISSION_CACHE_LOOKUPS = Counter(
    "authz_permission_cache_lookups_total",
    "Permission cache lookups by outcome",
    ["result"],
)
PERMISSION_STORE_QUERIES = Counter(
    "authz_permission_store_queries_total",
    "Queries issued against the role-permission store",
)
AUTHZ_DENIALS = Counter(
    "authz_denials_total",
    "Authorization gate rejections by error code",
    ["code"],
)
REPOSITORY_STATEMENTS = Counter(
    "repository_statements_total",
    "Statements issued by the safe repository",
    ["table", "operation"],
)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    HTTP_REQUESTS.labels(method=method, path=path, status=str(status)).inc()
    HTTP_LATENCY.labels(method=method, path=path).observe(duration)


def observe_permission_cache_hit() -> None:
    PERMISSION_CACHE_LOOKUPS.labels(result="hit").inc()


def observe_permission_cache_miss() -> None:
    PERMISSION_CACHE_LOOKUPS.labels(result="miss").inc()


def observe_permission_store_query() -> None:
    PERMISSION_STORE_QUERIES.inc()


def observe_authz_denial(code: str) -> None:
    AUTHZ_DENIALS.labels(code=code).inc()


def observe_repository_statement(table: str, operation: str) -> None:
    REPOSITORY_STATEMENTS.labels(table=table, operation=operation).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
