"""Statement builder for the safe repository.

Identifier positions accept only :class:`TableName` and :class:`ColumnName`;
SQLAlchemy renders the dialect's quoting for them and turns every value
into a bind parameter.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import (
    ColumnClause,
    ColumnElement,
    Delete,
    Insert,
    Select,
    TableClause,
    Update,
    delete,
    func,
    insert,
    literal_column,
    select,
    update,
)

from salescrm.platform.security.identifiers import ColumnName, TableName


Assignment = tuple[ColumnName, Any]

_ALL = literal_column("*")


def _require(identifier: object, kind: type) -> None:
    if not isinstance(identifier, kind):
        raise TypeError(f"expected {kind.__name__}, got {type(identifier).__name__}")


def _table(table: TableName, columns: Iterable[ColumnName]) -> TableClause:
    """Lightweight table construct carrying only the columns a statement touches."""

    _require(table, TableName)
    names: dict[str, ColumnName] = {}
    for column in columns:
        _require(column, ColumnName)
        names.setdefault(column.value, column)
    return table.construct(*(column.construct() for column in names.values()))


def _conditions(target: TableClause, where: Sequence[Assignment]) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    for column, value in where:
        col: ColumnClause[Any] = target.c[column.value]
        clauses.append(col.is_(None) if value is None else col == value)
    return clauses


def _columns(*groups: Sequence[Assignment]) -> list[ColumnName]:
    return [column for group in groups for column, _ in group]


def select_rows(
    table: TableName,
    *,
    where: Sequence[Assignment] = (),
    order_by: Sequence[ColumnName] = (),
    descending: bool = False,
    limit: int | None = None,
    offset: int | None = None,
) -> Select[Any]:
    target = _table(table, [*_columns(where), *order_by])
    stmt = select(_ALL).select_from(target).where(*_conditions(target, where))
    for column in order_by:
        key = target.c[column.value]
        stmt = stmt.order_by(key.desc() if descending else key.asc())
    if limit is not None:
        stmt = stmt.limit(limit)
    if offset is not None:
        stmt = stmt.offset(offset)
    return stmt


def insert_row(table: TableName, values: Sequence[Assignment]) -> Insert:
    if not values:
        raise ValueError("insert requires at least one column")
    target = _table(table, _columns(values))
    return insert(target).values({target.c[column.value]: value for column, value in values}).returning(_ALL)


def update_rows(table: TableName, values: Sequence[Assignment], *, where: Sequence[Assignment]) -> Update:
    if not values:
        raise ValueError("update requires at least one column")
    if not where:
        raise ValueError("update requires a where condition")
    target = _table(table, _columns(values, where))
    return (
        update(target)
        .where(*_conditions(target, where))
        .values({target.c[column.value]: value for column, value in values})
        .returning(_ALL)
    )


def delete_rows(table: TableName, *, where: Sequence[Assignment]) -> Delete:
    if not where:
        raise ValueError("delete requires a where condition")
    target = _table(table, _columns(where))
    return delete(target).where(*_conditions(target, where))


def count_rows(table: TableName, *, where: Sequence[Assignment] = ()) -> Select[Any]:
    target = _table(table, _columns(where))
    return select(func.count()).select_from(target).where(*_conditions(target, where))


def exists_row(table: TableName, *, where: Sequence[Assignment]) -> Select[Any]:
    target = _table(table, _columns(where))
    matching = select(literal_column("1")).select_from(target).where(*_conditions(target, where))
    return select(matching.exists())
