"""Request-time authorization gates.

Gates are FastAPI dependencies and run in the order they are declared on a
route. Declare static role gates before permission gates: the permission
gate only checks that a principal exists and does not re-verify the token.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends
from starlette.requests import Request

from salescrm import audit
from salescrm.core.auth import Principal, get_principal
from salescrm.core.roles import UserRole, can_access, is_at_least
from salescrm.metrics import observe_authz_denial
from salescrm.platform.security.errors import AuthenticationError, AuthorizationError, PermissionDeniedError
from salescrm.platform.security.permissions import PermissionResolver


logger = logging.getLogger("salescrm.authz")


def get_permission_resolver(request: Request) -> PermissionResolver:
    return request.app.state.permission_resolver


def require_principal(principal: Principal | None = Depends(get_principal)) -> Principal:
    if principal is None:
        observe_authz_denial(AuthenticationError.code)
        raise AuthenticationError()
    return principal


def require_role(*allowed_roles: UserRole) -> Callable[..., Principal]:
    allowed = frozenset(allowed_roles)

    def checker(request: Request, principal: Principal = Depends(require_principal)) -> Principal:
        if not can_access(principal.role, allowed):
            _deny(request, principal, required_roles=sorted(role.value for role in allowed))
            raise AuthorizationError()
        return principal

    return checker


def require_min_role(threshold: UserRole) -> Callable[..., Principal]:
    def checker(request: Request, principal: Principal = Depends(require_principal)) -> Principal:
        if not is_at_least(principal.role, threshold):
            _deny(request, principal, required_roles=[threshold.value])
            raise AuthorizationError()
        return principal

    return checker


def require_permission(*permission_codes: str) -> Callable[..., frozenset[str]]:
    """Allow the request when the actor holds at least one of ``permission_codes``.

    The resolved set is stored on ``request.state.permissions`` for handlers.
    A denial lists the acceptable codes so operators can diagnose it.
    """

    if not permission_codes:
        raise ValueError("require_permission needs at least one permission code")
    required = tuple(dict.fromkeys(permission_codes))

    def checker(
        request: Request,
        principal: Principal = Depends(require_principal),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> frozenset[str]:
        granted = resolver.resolve(principal.actor_id, principal.role)
        if granted.isdisjoint(required):
            _deny(request, principal, required_permissions=list(required))
            raise PermissionDeniedError(required)

        request.state.permissions = granted
        return granted

    return checker


def _deny(
    request: Request,
    principal: Principal,
    *,
    required_roles: list[str] | None = None,
    required_permissions: list[str] | None = None,
) -> None:
    observe_authz_denial(AuthorizationError.code)
    logger.info(
        "authz.denied",
        extra={
            "actor_id": principal.actor_id,
            "role": principal.role.value,
            "path": request.url.path,
            "required_roles": required_roles,
            "required_permissions": required_permissions,
        },
    )
    audit.record(
        principal.actor_id,
        "access_denied",
        resource=f"{request.method} {request.url.path}",
        details={"role": principal.role.value, "required_roles": required_roles, "required_permissions": required_permissions},
    )
