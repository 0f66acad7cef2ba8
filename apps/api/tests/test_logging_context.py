from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salescrm.authz.seed import seed_authz
from salescrm.core.auth import Principal, get_token_service
from salescrm.core.config import get_settings
from salescrm.core.database import Base, get_db, get_engine
import salescrm.models  # noqa: F401
from salescrm.core.roles import UserRole
from salescrm.logging import JsonLogFormatter
from salescrm.main import app
from salescrm.middleware.rate_limit import reset_rate_limiter
from salescrm.platform.security.permissions import PermissionCache, PermissionResolver


SECRET = "logging-test-signing-secret-0123456789abcd"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    get_token_service.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    get_token_service.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(engine: Engine) -> Generator[TestClient, None, None]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db_session = SessionLocal()
    seed_authz(db_session)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    previous_resolver = app.state.permission_resolver
    app.state.permission_resolver = PermissionResolver(PermissionCache(), SessionLocal)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.permission_resolver = previous_resolver
    db_session.close()


def _headers(role: UserRole, actor_id: str) -> dict[str, str]:
    principal = Principal(actor_id=actor_id, display_name=actor_id, role=role)
    return {"Authorization": f"Bearer {get_token_service().issue(principal)}"}


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(
        "/api/customers/5f0c8a52-4a1e-4c35-9d5f-8f2a9b7d3c11",
        headers={**_headers(UserRole.FINANCE, "fin-1"), "X-Correlation-Id": "abc-123"},
    )
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "salescrm.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/customers/{customer_id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "actor_id", None) == "fin-1"
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_anonymous_request_logs_without_actor(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    assert client.get("/api/customers").status_code == 401

    records = [record for record in caplog.records if record.getMessage() == "http.request"]
    assert any(getattr(record, "status_code", None) == 401 and record.actor_id is None for record in records)


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.getLogger("salescrm.test").makeRecord(
        "salescrm.test",
        logging.INFO,
        __file__,
        1,
        "authz.denied",
        (),
        None,
        extra={"actor_id": "rep-1", "required_permissions": ["agent:scoring"], "jwt": "secret-token"},
    )
    record.correlation_id = "fmt-1"
    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "authz.denied"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"] == {"actor_id": "rep-1", "required_permissions": ["agent:scoring"]}


def test_json_formatter_truncates_errors() -> None:
    record = logging.makeLogRecord({"msg": "authz.permission_resolution_failed", "error": "x" * 2000})
    payload = json.loads(JsonLogFormatter().format(record))
    assert len(payload["fields"]["error"]) == 500


def test_access_log_carries_tenant_and_role(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    response = client.get("/me", headers={**_headers(UserRole.SALES_REP, "rep-7"), "X-Tenant-Id": "acme"})
    assert response.status_code == 200

    records = [record for record in caplog.records if record.getMessage() == "http.request"]
    assert any(
        getattr(record, "tenant_id", None) == "acme"
        and getattr(record, "role", None) == "sales_rep"
        and getattr(record, "actor_id", None) == "rep-7"
        for record in records
    )
