from salescrm.platform.security.errors import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    InvalidIdentifierError,
    InvalidTableError,
    PermissionDeniedError,
    PermissionResolutionError,
    RepositoryValidationError,
    SecurityError,
)
from salescrm.platform.security.identifiers import (
    ALLOWED_TABLES,
    MAX_IDENTIFIER_LENGTH,
    ColumnName,
    TableName,
    is_valid_column_name,
    is_valid_table_name,
)
from salescrm.platform.security.permissions import PermissionCache, PermissionCacheBackend, PermissionResolver
from salescrm.platform.security.repository import SafeRepository

__all__ = [
    "SecurityError",
    "AuthenticationError",
    "AuthorizationError",
    "PermissionDeniedError",
    "PermissionResolutionError",
    "RepositoryValidationError",
    "InvalidIdentifierError",
    "ConfigurationError",
    "InvalidTableError",
    "ALLOWED_TABLES",
    "MAX_IDENTIFIER_LENGTH",
    "TableName",
    "ColumnName",
    "is_valid_table_name",
    "is_valid_column_name",
    "PermissionCache",
    "PermissionCacheBackend",
    "PermissionResolver",
    "SafeRepository",
]
