from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt
from starlette.requests import Request

from salescrm.core.config import Settings, get_settings
from salescrm.core.context import bind_actor
from salescrm.core.roles import UserRole, parse_role
from salescrm.platform.security.errors import ConfigurationError


logger = logging.getLogger("salescrm.auth")

MIN_SECRET_LENGTH = 32
PLACEHOLDER_SECRETS = frozenset({"replace-me", "default_secret", "changeme", "secret"})
DEVELOPMENT_SECRET = "dev_secret_key_for_local_development_only_32chars"


@dataclass(frozen=True, slots=True)
class Principal:
    actor_id: str
    display_name: str
    role: UserRole


def is_weak_secret(secret: str | None) -> bool:
    return not secret or secret in PLACEHOLDER_SECRETS or len(secret) < MIN_SECRET_LENGTH


def resolve_signing_secret(settings: Settings) -> str:
    """Return the token signing secret, refusing weak secrets outside development."""

    secret = settings.jwt_secret
    if not is_weak_secret(secret):
        return secret
    if not settings.is_development:
        raise ConfigurationError(
            f"JWT_SECRET must be set to at least {MIN_SECRET_LENGTH} characters in '{settings.app_env}'"
        )
    logger.warning("auth.weak_jwt_secret", extra={"environment": settings.app_env})
    return DEVELOPMENT_SECRET


class TokenService:
    """Issues and verifies signed, time-bounded identity assertions."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", expires_in: timedelta = timedelta(days=7)) -> None:
        if is_weak_secret(secret):
            raise ConfigurationError("token signing secret is too weak")
        self._secret = secret
        self._algorithm = algorithm
        self._expires_in = expires_in

    def issue(self, principal: Principal, *, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        claims: dict[str, Any] = {
            "sub": principal.actor_id,
            "name": principal.display_name,
            "role": principal.role.value,
            "iat": issued_at,
            "exp": issued_at + self._expires_in,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Principal | None:
        """Decode ``token``; every failure yields ``None`` without saying why."""

        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            return None

        actor_id = payload.get("sub")
        display_name = payload.get("name")
        role = parse_role(payload.get("role"))
        if not isinstance(actor_id, str) or not actor_id or not isinstance(display_name, str) or role is None:
            return None
        return Principal(actor_id=actor_id, display_name=display_name, role=role)


@lru_cache
def get_token_service() -> TokenService:
    settings = get_settings()
    return TokenService(
        resolve_signing_secret(settings),
        algorithm=settings.jwt_algorithm,
        expires_in=timedelta(days=settings.jwt_expires_days),
    )


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    return token or None


def get_principal(request: Request) -> Principal | None:
    token = bearer_token(request)
    if token is None:
        return None

    principal = get_token_service().verify(token)
    if principal is None:
        return None

    bind_actor(request, principal.actor_id, principal.role.value)
    return principal
