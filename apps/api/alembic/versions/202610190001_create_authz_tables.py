"""create authz tables and default grants

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "permissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("module", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Uuid(), nullable=False),
        sa.Column("permission_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )
    op.create_index("ix_role_permissions_permission_id", "role_permissions", ["permission_id"], unique=False)

    _seed_defaults()


def downgrade() -> None:
    op.drop_index("ix_role_permissions_permission_id", table_name="role_permissions")
    op.drop_table("role_permissions")
    op.drop_table("permissions")
    op.drop_table("roles")


def _seed_defaults() -> None:
    now = datetime.now(timezone.utc)

    role_ids = {
        "admin": uuid.UUID("0b7c1f4e-93a2-4d1e-8f65-2a7d4c9e1b01"),
        "sales_manager": uuid.UUID("5e2d8a10-4b7f-4c3a-9d21-6f0e3b8c2a02"),
        "finance": uuid.UUID("a41f6c3d-2e8b-4f90-b5d7-1c9a0e4f7b03"),
        "sales_rep": uuid.UUID("d8c3b2a1-7f6e-4a5d-8c9b-0e1f2a3b4c04"),
    }

    permission_ids = {
        "agent:workflow": uuid.UUID("1f0e2d3c-4b5a-4968-8776-a5b4c3d2e111"),
        "agent:reactivation": uuid.UUID("2a1b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4222"),
        "agent:analyze": uuid.UUID("3b2c4d5e-6f7a-4b8c-9d0e-1f2a3b4c5333"),
        "agent:scoring": uuid.UUID("4c3d5e6f-7a8b-4c9d-8e1f-2a3b4c5d6444"),
        "system:metrics": uuid.UUID("5d4e6f7a-8b9c-4d0e-9f2a-3b4c5d6e7555"),
    }

    role_table = sa.table(
        "roles",
        sa.column("id", sa.Uuid()),
        sa.column("name", sa.String()),
        sa.column("description", sa.Text()),
        sa.column("is_system", sa.Boolean()),
        sa.column("created_at", sa.DateTime(timezone=True)),
    )
    op.bulk_insert(
        role_table,
        [
            {"id": role_ids["admin"], "name": "admin", "description": "Administrator", "is_system": True, "created_at": now},
            {"id": role_ids["sales_manager"], "name": "sales_manager", "description": "Sales manager", "is_system": True, "created_at": now},
            {"id": role_ids["finance"], "name": "finance", "description": "Finance", "is_system": True, "created_at": now},
            {"id": role_ids["sales_rep"], "name": "sales_rep", "description": "Sales representative", "is_system": True, "created_at": now},
        ],
    )

    permission_table = sa.table(
        "permissions",
        sa.column("id", sa.Uuid()),
        sa.column("code", sa.String()),
        sa.column("name", sa.String()),
        sa.column("module", sa.String()),
        sa.column("created_at", sa.DateTime(timezone=True)),
    )
    op.bulk_insert(
        permission_table,
        [
            {"id": permission_ids["agent:workflow"], "code": "agent:workflow", "name": "Run agent workflows", "module": "agent", "created_at": now},
            {"id": permission_ids["agent:reactivation"], "code": "agent:reactivation", "name": "Customer reactivation suggestions", "module": "agent", "created_at": now},
            {"id": permission_ids["agent:analyze"], "code": "agent:analyze", "name": "Pipeline analysis", "module": "agent", "created_at": now},
            {"id": permission_ids["agent:scoring"], "code": "agent:scoring", "name": "Automatic customer scoring", "module": "agent", "created_at": now},
            {"id": permission_ids["system:metrics"], "code": "system:metrics", "name": "Read service metrics", "module": "system", "created_at": now},
        ],
    )

    role_permission_table = sa.table(
        "role_permissions",
        sa.column("role_id", sa.Uuid()),
        sa.column("permission_id", sa.Uuid()),
        sa.column("created_at", sa.DateTime(timezone=True)),
    )

    # admin has no rows: it resolves to every permission at request time.
    grants = {
        "sales_manager": ["agent:workflow", "agent:reactivation", "agent:analyze", "agent:scoring"],
        "finance": ["agent:analyze"],
        "sales_rep": ["agent:reactivation"],
    }
    op.bulk_insert(
        role_permission_table,
        [
            {"role_id": role_ids[role], "permission_id": permission_ids[code], "created_at": now}
            for role, codes in grants.items()
            for code in codes
        ],
    )
