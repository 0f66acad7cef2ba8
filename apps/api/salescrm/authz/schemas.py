from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class _OrmRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime


class RoleRead(_OrmRead):
    name: str
    description: str | None
    is_system: bool


class PermissionRead(_OrmRead):
    code: str
    name: str
    module: str


class RolePermissionsReplace(BaseModel):
    """Full replacement set; an empty list revokes every grant."""

    permission_ids: list[UUID] = Field(default_factory=list)


class AttachRolePermissionRequest(BaseModel):
    permission_id: UUID


class PermissionCacheInvalidateRequest(BaseModel):
    # Omitted means flush every actor.
    actor_id: str | None = Field(default=None, min_length=1)


class PermissionCacheInvalidateResponse(BaseModel):
    scope: str
    actor_id: str | None = None
