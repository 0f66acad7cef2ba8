from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from salescrm.core.auth import (
    DEVELOPMENT_SECRET,
    Principal,
    TokenService,
    get_token_service,
    is_weak_secret,
    resolve_signing_secret,
)
from salescrm.core.config import Settings, get_settings
from salescrm.core.roles import UserRole
from salescrm.platform.security.errors import ConfigurationError


SECRET = "unit-test-signing-secret-0123456789abcdef"
OTHER_SECRET = "another-signing-secret-fedcba9876543210xyz"


@pytest.fixture(autouse=True)
def clear_caches() -> Generator[None, None, None]:
    get_settings.cache_clear()
    get_token_service.cache_clear()
    yield
    get_settings.cache_clear()
    get_token_service.cache_clear()


@pytest.fixture()
def service() -> TokenService:
    return TokenService(SECRET)


@pytest.fixture()
def principal() -> Principal:
    return Principal(actor_id="user-42", display_name="Dana Rep", role=UserRole.SALES_REP)


def test_issued_token_verifies_to_same_principal(service: TokenService, principal: Principal) -> None:
    assert service.verify(service.issue(principal)) == principal


def test_claims_carry_identity_and_seven_day_expiry(service: TokenService, principal: Principal) -> None:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    token = service.issue(principal, now=now)
    claims = jwt.get_unverified_claims(token)
    assert claims["sub"] == "user-42"
    assert claims["name"] == "Dana Rep"
    assert claims["role"] == "sales_rep"
    assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())


def test_expired_token_is_rejected(service: TokenService, principal: Principal) -> None:
    issued = datetime.now(timezone.utc) - timedelta(days=8)
    assert service.verify(service.issue(principal, now=issued)) is None


def test_token_signed_with_other_key_is_rejected(principal: Principal) -> None:
    token = TokenService(OTHER_SECRET).issue(principal)
    assert TokenService(SECRET).verify(token) is None


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c", "Bearer x"])
def test_malformed_tokens_are_rejected(service: TokenService, token: str) -> None:
    assert service.verify(token) is None


def test_tampered_role_is_rejected(service: TokenService, principal: Principal) -> None:
    header, payload, signature = service.issue(principal).split(".")
    forged = TokenService(OTHER_SECRET).issue(
        Principal(actor_id=principal.actor_id, display_name=principal.display_name, role=UserRole.ADMIN)
    )
    assert service.verify(".".join([header, forged.split(".")[1], signature])) is None


def test_unknown_role_claim_is_rejected(service: TokenService) -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "user-1", "name": "Eve", "role": "superuser", "iat": now, "exp": now + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )
    assert service.verify(token) is None


def test_missing_subject_is_rejected(service: TokenService) -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"name": "Eve", "role": "admin", "exp": now + timedelta(hours=1)}, SECRET, algorithm="HS256")
    assert service.verify(token) is None


@pytest.mark.parametrize("secret", [None, "", "changeme", "replace-me", "default_secret", "short-secret"])
def test_weak_secrets(secret: str | None) -> None:
    assert is_weak_secret(secret)


def test_token_service_refuses_weak_secret() -> None:
    with pytest.raises(ConfigurationError):
        TokenService("changeme")


def test_weak_secret_is_fatal_in_production() -> None:
    with pytest.raises(ConfigurationError):
        resolve_signing_secret(Settings(app_env="production", jwt_secret="changeme"))


def test_weak_secret_falls_back_in_development() -> None:
    assert resolve_signing_secret(Settings(app_env="local", jwt_secret="")) == DEVELOPMENT_SECRET


def test_strong_secret_is_used_everywhere() -> None:
    assert resolve_signing_secret(Settings(app_env="production", jwt_secret=SECRET)) == SECRET


def test_get_token_service_reads_settings(monkeypatch: pytest.MonkeyPatch, principal: Principal) -> None:
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("APP_ENV", "production")
    token = get_token_service().issue(principal)
    assert TokenService(SECRET).verify(token) == principal
