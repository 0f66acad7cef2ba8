from salescrm.platform.security.errors import AuthenticationError, AuthorizationError, PermissionDeniedError
from salescrm.platform.security.permissions import PermissionCache, PermissionResolver
from salescrm.platform.security.repository import SafeRepository

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "PermissionDeniedError",
    "PermissionCache",
    "PermissionResolver",
    "SafeRepository",
]
