from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from salescrm.authz.models import Permission, Role, RolePermission
from salescrm.core.roles import UserRole


# (code, name, module)
DEFAULT_PERMISSIONS: tuple[tuple[str, str, str], ...] = (
    ("agent:workflow", "Run agent workflows", "agent"),
    ("agent:reactivation", "Customer reactivation suggestions", "agent"),
    ("agent:analyze", "Pipeline analysis", "agent"),
    ("agent:scoring", "Automatic customer scoring", "agent"),
    ("system:metrics", "Read service metrics", "system"),
)

ROLE_DESCRIPTIONS: dict[UserRole, str] = {
    UserRole.ADMIN: "Administrator",
    UserRole.SALES_MANAGER: "Sales manager",
    UserRole.FINANCE: "Finance",
    UserRole.SALES_REP: "Sales representative",
}

# The admin role is absent on purpose: it resolves to every permission.
DEFAULT_GRANTS: dict[UserRole, tuple[str, ...]] = {
    UserRole.SALES_MANAGER: ("agent:workflow", "agent:reactivation", "agent:analyze", "agent:scoring"),
    UserRole.FINANCE: ("agent:analyze",),
    UserRole.SALES_REP: ("agent:reactivation",),
}


def seed_authz(session: Session) -> None:
    """Insert built-in roles, the default permission catalogue and grants.

    Idempotent: existing rows are left untouched and missing grants are added.
    """

    roles = {role.name: role for role in session.scalars(select(Role)).all()}
    for user_role, description in ROLE_DESCRIPTIONS.items():
        if user_role.value not in roles:
            role = Role(name=user_role.value, description=description, is_system=True)
            session.add(role)
            roles[user_role.value] = role

    permissions = {permission.code: permission for permission in session.scalars(select(Permission)).all()}
    for code, name, module in DEFAULT_PERMISSIONS:
        if code not in permissions:
            permission = Permission(code=code, name=name, module=module)
            session.add(permission)
            permissions[code] = permission
    session.flush()

    existing = set(session.execute(select(RolePermission.role_id, RolePermission.permission_id)).tuples().all())
    for user_role, codes in DEFAULT_GRANTS.items():
        role = roles[user_role.value]
        for code in codes:
            key = (role.id, permissions[code].id)
            if key not in existing:
                session.add(RolePermission(role_id=role.id, permission_id=permissions[code].id))
                existing.add(key)
    session.commit()
