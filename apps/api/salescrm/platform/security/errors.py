from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class SecurityError(Exception):
    """Base error rendered as a structured response at the HTTP boundary."""

    code = "SERVER_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def details(self) -> dict[str, Any] | None:
        return None


class AuthenticationError(SecurityError):
    """Missing, malformed or expired identity token."""

    code = "AUTH_INVALID"
    status_code = 401
    default_message = "Authentication token is missing, invalid or expired"


class AuthorizationError(SecurityError):
    """Valid identity lacking the required role or permission."""

    code = "AUTH_FORBIDDEN"
    status_code = 403
    default_message = "Insufficient role"


class PermissionDeniedError(AuthorizationError):
    def __init__(self, required_permissions: Iterable[str]) -> None:
        self.required_permissions = list(dict.fromkeys(required_permissions))
        super().__init__(f"Requires permission: {' or '.join(self.required_permissions)}")

    @property
    def details(self) -> dict[str, Any]:
        return {"required_permissions": self.required_permissions}


class PermissionResolutionError(SecurityError):
    """The permission store could not be queried; never an empty grant."""

    default_message = "Permission check failed"


class RepositoryValidationError(SecurityError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"


class InvalidIdentifierError(RepositoryValidationError):
    def __init__(self, identifier: object) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid field name: {identifier!r}")


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration; the affected component must not start."""


class InvalidTableError(ConfigurationError):
    def __init__(self, table_name: object) -> None:
        self.table_name = table_name
        super().__init__(f"Invalid table name: {table_name!r}")
