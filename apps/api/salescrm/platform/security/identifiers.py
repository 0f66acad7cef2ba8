from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnClause, TableClause, column, table

from salescrm.platform.security.errors import InvalidIdentifierError, InvalidTableError


# Must change together with migrations that add or drop CRUD-eligible tables.
ALLOWED_TABLES: frozenset[str] = frozenset(
    {
        "users",
        "customers",
        "contacts",
        "opportunities",
        "quotes",
        "quote_items",
        "orders",
        "products",
        "pricing_tiers",
        "follow_ups",
        "approval_logs",
        "system_settings",
        "operation_logs",
        "tasks",
        "notifications",
        "sales_targets",
        "team_targets",
        "contracts",
        "payment_plans",
        "competitors",
        "opportunity_competitors",
        "customer_scores",
        "sales_forecasts",
    }
)

MAX_IDENTIFIER_LENGTH = 64
_COLUMN_NAME_RE = re.compile(r"[a-z_][a-z0-9_]*")


def is_valid_table_name(value: object) -> bool:
    return isinstance(value, str) and value in ALLOWED_TABLES


def is_valid_column_name(value: object) -> bool:
    if not isinstance(value, str) or len(value) > MAX_IDENTIFIER_LENGTH:
        return False
    return _COLUMN_NAME_RE.fullmatch(value) is not None


@dataclass(frozen=True, slots=True)
class TableName:
    """A table identifier that is known to be on the allow-list."""

    value: str

    def __post_init__(self) -> None:
        if not is_valid_table_name(self.value):
            raise InvalidTableError(self.value)

    def construct(self, *columns: ColumnClause[Any]) -> TableClause:
        return table(self.value, *columns)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ColumnName:
    """A column identifier that matches the identifier pattern."""

    value: str

    def __post_init__(self) -> None:
        if not is_valid_column_name(self.value):
            raise InvalidIdentifierError(self.value)

    def construct(self) -> ColumnClause[Any]:
        return column(self.value)

    def __str__(self) -> str:
        return self.value
