from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from salescrm.authz.schemas import (
    AttachRolePermissionRequest,
    PermissionCacheInvalidateRequest,
    PermissionCacheInvalidateResponse,
    PermissionRead,
    RolePermissionsReplace,
    RoleRead,
)
from salescrm.authz.service import authorization_admin_service
from salescrm.core.database import get_db
from salescrm.core.rbac import get_permission_resolver, require_role
from salescrm.core.roles import UserRole
from salescrm.platform.security.permissions import PermissionResolver


admin_router = APIRouter(
    prefix="/api/admin",
    tags=["admin.authz"],
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)


@admin_router.get("/roles", response_model=list[RoleRead])
def list_roles(db: Session = Depends(get_db)) -> list[RoleRead]:
    return authorization_admin_service.list_roles(db)


@admin_router.get("/permissions", response_model=list[PermissionRead])
def list_permissions(db: Session = Depends(get_db)) -> list[PermissionRead]:
    return authorization_admin_service.list_permissions(db)


@admin_router.get("/roles/{role_id}/permissions", response_model=list[PermissionRead])
def list_role_permissions(role_id: uuid.UUID, db: Session = Depends(get_db)) -> list[PermissionRead]:
    return authorization_admin_service.list_role_permissions(db, role_id)


@admin_router.put("/roles/{role_id}/permissions", response_model=list[PermissionRead])
def replace_role_permissions(
    role_id: uuid.UUID,
    dto: RolePermissionsReplace,
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> list[PermissionRead]:
    return authorization_admin_service.replace_role_permissions(db, resolver, role_id, dto.permission_ids)


@admin_router.post(
    "/roles/{role_id}/permissions",
    response_model=PermissionRead,
    status_code=status.HTTP_201_CREATED,
)
def attach_role_permission(
    role_id: uuid.UUID,
    dto: AttachRolePermissionRequest,
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> PermissionRead:
    return authorization_admin_service.attach_permission_to_role(db, resolver, role_id, dto.permission_id)


@admin_router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=status.HTTP_200_OK)
def detach_role_permission(
    role_id: uuid.UUID,
    permission_id: uuid.UUID,
    db: Session = Depends(get_db),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> None:
    authorization_admin_service.detach_permission_from_role(db, resolver, role_id, permission_id)


@admin_router.post("/permission-cache/invalidate", response_model=PermissionCacheInvalidateResponse)
def invalidate_permission_cache(
    dto: PermissionCacheInvalidateRequest,
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> PermissionCacheInvalidateResponse:
    resolver.invalidate(dto.actor_id)
    if dto.actor_id is None:
        return PermissionCacheInvalidateResponse(scope="all")
    return PermissionCacheInvalidateResponse(scope="actor", actor_id=dto.actor_id)
