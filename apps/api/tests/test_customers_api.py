from __future__ import annotations

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
from salescrm.crm.repositories import CustomerScoreRepository
from salescrm.main import app
from salescrm.middleware.rate_limit import reset_rate_limiter
from salescrm.platform.security.permissions import PermissionCache, PermissionResolver


SECRET = "customers-test-signing-secret-0123456789ab"


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


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    seed_authz(session)
    try:
        yield session
    finally:
        session.close()


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
def client(engine: Engine, db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    previous_resolver = app.state.permission_resolver
    app.state.permission_resolver = PermissionResolver(PermissionCache(), sessionmaker(bind=engine))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.permission_resolver = previous_resolver


def _headers(role: UserRole, actor_id: str) -> dict[str, str]:
    principal = Principal(actor_id=actor_id, display_name=actor_id, role=role)
    return {"Authorization": f"Bearer {get_token_service().issue(principal)}"}


REP = (UserRole.SALES_REP, "rep-1")
OTHER_REP = (UserRole.SALES_REP, "rep-2")
MANAGER = (UserRole.SALES_MANAGER, "mgr-1")
FINANCE = (UserRole.FINANCE, "fin-1")
ADMIN = (UserRole.ADMIN, "admin-1")


def _create(client: TestClient, actor: tuple[UserRole, str], **fields: object) -> dict:
    response = client.post("/api/customers", json={"name": "Acme", **fields}, headers=_headers(*actor))
    assert response.status_code == 201
    return response.json()


def test_create_sets_owner_from_token(client: TestClient) -> None:
    created = _create(client, REP, email="buyer@example.com", market_region="EU")
    assert created["owner_id"] == "rep-1"
    assert created["status"] == "private"
    assert created["market_region"] == "EU"


def test_create_ignores_owner_in_body(client: TestClient) -> None:
    created = _create(client, REP, owner_id="someone-else")
    assert created["owner_id"] == "rep-1"


def test_any_role_can_read(client: TestClient) -> None:
    created = _create(client, REP)
    listing = client.get("/api/customers", headers=_headers(*FINANCE))
    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()] == [created["id"]]

    single = client.get(f"/api/customers/{created['id']}", headers=_headers(*FINANCE))
    assert single.status_code == 200
    assert single.json()["name"] == "Acme"


def test_missing_customer_is_not_found(client: TestClient) -> None:
    response = client.get("/api/customers/does-not-exist", headers=_headers(*REP))
    assert response.status_code == 404


def test_list_rejects_bad_paging(client: TestClient) -> None:
    response = client.get("/api/customers?offset=-1", headers=_headers(*REP))
    assert response.status_code == 422


def test_update_changes_only_writable_fields(client: TestClient) -> None:
    created = _create(client, REP, market_region="EU")
    response = client.patch(
        f"/api/customers/{created['id']}",
        json={"name": "Acme Renamed", "market_region": "US", "id": "hijack"},
        headers=_headers(*REP),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == created["id"]
    assert body["name"] == "Acme Renamed"
    assert body["market_region"] == "EU"
    assert body["updated_at"] is not None


def test_empty_update_returns_current_row(client: TestClient) -> None:
    created = _create(client, REP)
    response = client.patch(f"/api/customers/{created['id']}", json={}, headers=_headers(*REP))
    assert response.status_code == 200
    assert response.json()["name"] == "Acme"


def test_finance_cannot_write(client: TestClient) -> None:
    response = client.post("/api/customers", json={"name": "Acme"}, headers=_headers(*FINANCE))
    assert response.status_code == 403


def test_only_admin_can_delete(client: TestClient) -> None:
    created = _create(client, REP)
    denied = client.delete(f"/api/customers/{created['id']}", headers=_headers(*MANAGER))
    assert denied.status_code == 403

    deleted = client.delete(f"/api/customers/{created['id']}", headers=_headers(*ADMIN))
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True}

    again = client.delete(f"/api/customers/{created['id']}", headers=_headers(*ADMIN))
    assert again.status_code == 404


def test_manager_auto_score_queues_every_customer(client: TestClient, engine: Engine) -> None:
    _create(client, REP)
    _create(client, OTHER_REP)

    response = client.post("/api/agent/auto-score", json={}, headers=_headers(*MANAGER))
    assert response.status_code == 200
    assert response.json()["queued"] == 2
    assert CustomerScoreRepository(engine).count({"requested_by": "mgr-1"}) == 2


def test_auto_score_skips_unknown_ids(client: TestClient) -> None:
    created = _create(client, REP)
    response = client.post(
        "/api/agent/auto-score",
        json={"customer_ids": [created["id"], created["id"], "missing"]},
        headers=_headers(*ADMIN),
    )
    assert response.status_code == 200
    assert response.json()["queued"] == 1


def test_customer_summary_counts_by_status(client: TestClient) -> None:
    _create(client, REP)
    _create(client, REP, status="public_pool")
    _create(client, OTHER_REP)

    response = client.get("/api/agent/customer-summary", headers=_headers(*FINANCE))
    assert response.status_code == 200
    assert response.json() == {"total": 3, "by_status": {"private": 2, "public_pool": 1}}
