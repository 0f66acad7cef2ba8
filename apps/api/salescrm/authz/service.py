from __future__ import annotations

import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from salescrm.authz.models import Permission, Role, RolePermission
from salescrm.authz.schemas import PermissionRead, RoleRead
from salescrm.platform.security.permissions import PermissionResolver


logger = logging.getLogger("salescrm.authz")


class AuthorizationAdminService:
    """Role/permission administration.

    Every write to ``role_permissions`` clears the whole permission cache:
    a role change affects every actor holding that role and the cache is
    keyed by actor.
    """

    def list_roles(self, session: Session) -> list[RoleRead]:
        rows = session.scalars(select(Role).order_by(Role.name.asc())).all()
        return [RoleRead.model_validate(row) for row in rows]

    def list_permissions(self, session: Session) -> list[PermissionRead]:
        rows = session.scalars(select(Permission).order_by(Permission.module.asc(), Permission.code.asc())).all()
        return [PermissionRead.model_validate(row) for row in rows]

    def list_role_permissions(self, session: Session, role_id: uuid.UUID) -> list[PermissionRead]:
        self._get_role(session, role_id)
        rows = session.scalars(
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
            .order_by(Permission.module.asc(), Permission.code.asc())
        ).all()
        return [PermissionRead.model_validate(row) for row in rows]

    def replace_role_permissions(
        self,
        session: Session,
        resolver: PermissionResolver,
        role_id: uuid.UUID,
        permission_ids: list[uuid.UUID],
    ) -> list[PermissionRead]:
        role = self._get_role(session, role_id)
        wanted = list(dict.fromkeys(permission_ids))
        if wanted:
            found = set(session.scalars(select(Permission.id).where(Permission.id.in_(wanted))).all())
            unknown = [str(permission_id) for permission_id in wanted if permission_id not in found]
            if unknown:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"unknown permission ids: {', '.join(unknown)}",
                )

        session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
        for permission_id in wanted:
            session.add(RolePermission(role_id=role.id, permission_id=permission_id))
        session.commit()

        resolver.invalidate()
        logger.info("authz.role_permissions_replaced", extra={"role": role.name})
        return self.list_role_permissions(session, role.id)

    def attach_permission_to_role(
        self,
        session: Session,
        resolver: PermissionResolver,
        role_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> PermissionRead:
        role = self._get_role(session, role_id)
        permission = session.get(Permission, permission_id)
        if permission is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="permission not found")

        if session.get(RolePermission, (role.id, permission.id)) is None:
            session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            session.commit()
            resolver.invalidate()
        return PermissionRead.model_validate(permission)

    def detach_permission_from_role(
        self,
        session: Session,
        resolver: PermissionResolver,
        role_id: uuid.UUID,
        permission_id: uuid.UUID,
    ) -> None:
        mapping = session.get(RolePermission, (role_id, permission_id))
        if mapping is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="role-permission mapping not found")

        session.delete(mapping)
        session.commit()
        resolver.invalidate()

    @staticmethod
    def _get_role(session: Session, role_id: uuid.UUID) -> Role:
        role = session.get(Role, role_id)
        if role is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="role not found")
        return role


authorization_admin_service = AuthorizationAdminService()
