from salescrm.authz.models import Permission, Role, RolePermission

__all__ = [
    "Role",
    "Permission",
    "RolePermission",
]
