from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, ClassVar, TypeVar

from sqlalchemy import Connection, CursorResult, Engine, Executable, NestedTransaction, RootTransaction

from salescrm.core.database import get_engine
from salescrm.metrics import observe_repository_statement
from salescrm.platform.security.errors import RepositoryValidationError
from salescrm.platform.security.identifiers import ColumnName, TableName, is_valid_column_name
from salescrm.platform.security.sql import (
    Assignment,
    count_rows,
    delete_rows,
    exists_row,
    insert_row,
    select_rows,
    update_rows,
)


logger = logging.getLogger("salescrm.repository")

Row = dict[str, Any]
R = TypeVar("R")
RepoT = TypeVar("RepoT", bound="SafeRepository")

_ID = ColumnName("id")


class SafeRepository:
    """Parameterized CRUD over one allow-listed table.

    Caller-supplied strings reach statement text only as :class:`TableName` or
    :class:`ColumnName`; every value is a bind parameter. Outside
    :meth:`transaction` each call runs in its own unit of work.
    """

    table: ClassVar[str] = ""
    order_column: ClassVar[str] = "created_at"
    protected_fields: ClassVar[frozenset[str]] = frozenset({"id", "created_at", "market_region"})
    generate_ids: ClassVar[bool] = True

    def __init__(self, bind: Engine | Connection | None = None, *, table_name: str | None = None) -> None:
        self._table = TableName(table_name if table_name is not None else self.table)
        # id breaks ties so offset paging is stable.
        self._order_by = tuple(dict.fromkeys((ColumnName(self.order_column), _ID)))
        self._bind: Engine | Connection = bind if bind is not None else get_engine()

    @property
    def table_name(self) -> str:
        return self._table.value

    def find_all(self, limit: int = 100, offset: int = 0) -> list[Row]:
        _require_non_negative("limit", limit)
        _require_non_negative("offset", offset)
        statement = select_rows(self._table, order_by=self._order_by, descending=True, limit=limit, offset=offset)
        with self._connection() as conn:
            return _rows(self._execute(conn, statement, "select"))

    def find_by_id(self, record_id: Any) -> Row | None:
        statement = select_rows(self._table, where=[(_ID, record_id)])
        with self._connection() as conn:
            return _first(self._execute(conn, statement, "select"))

    def find_by_field(self, field: str, value: Any) -> list[Row]:
        statement = select_rows(self._table, where=[(ColumnName(field), value)])
        with self._connection() as conn:
            return _rows(self._execute(conn, statement, "select"))

    def create(self, data: Mapping[str, Any]) -> Row:
        values = [(ColumnName(key), value) for key, value in data.items() if is_valid_column_name(key)]
        if not values:
            raise RepositoryValidationError("No valid fields to insert")
        if self.generate_ids and all(column != _ID for column, _ in values):
            values.insert(0, (_ID, str(uuid.uuid4())))

        statement = insert_row(self._table, values)
        with self._connection() as conn:
            row = _first(self._execute(conn, statement, "insert"))
        if row is None:
            raise RuntimeError(f"insert into {self.table_name} returned no row")
        return row

    def update(self, record_id: Any, data: Mapping[str, Any]) -> Row | None:
        values = [
            (ColumnName(key), value)
            for key, value in data.items()
            if key not in self.protected_fields and is_valid_column_name(key)
        ]
        if not values:
            return self.find_by_id(record_id)

        statement = update_rows(self._table, values, where=[(_ID, record_id)])
        with self._connection() as conn:
            return _first(self._execute(conn, statement, "update"))

    def delete(self, record_id: Any) -> bool:
        statement = delete_rows(self._table, where=[(_ID, record_id)])
        with self._connection() as conn:
            result = self._execute(conn, statement, "delete")
            return (result.rowcount or 0) > 0

    def count(self, where: Mapping[str, Any] | None = None) -> int:
        conditions: list[Assignment] = [(ColumnName(key), value) for key, value in (where or {}).items()]
        statement = count_rows(self._table, where=conditions)
        with self._connection() as conn:
            return int(self._execute(conn, statement, "count").scalar_one())

    def exists(self, field: str, value: Any) -> bool:
        statement = exists_row(self._table, where=[(ColumnName(field), value)])
        with self._connection() as conn:
            return bool(self._execute(conn, statement, "exists").scalar_one())

    def transaction(self: RepoT, callback: Callable[[RepoT], R]) -> R:
        """Run ``callback`` with a repository bound to one connection.

        Commits when the callback returns; rolls back and re-raises on any
        exception. On a connection that already has a transaction open
        (including the one handed to an outer callback) the work runs in a
        savepoint, so a failed inner block leaves the outer work intact.
        """

        if isinstance(self._bind, Connection):
            conn = self._bind
            scope = conn.begin_nested() if conn.in_transaction() else conn.begin()
            return self._run(scope, callback, self)

        with self._bind.connect() as conn:
            return self._run(conn.begin(), callback, self._bound_to(conn))

    def _run(
        self,
        scope: RootTransaction | NestedTransaction,
        callback: Callable[[RepoT], R],
        repo: RepoT,
    ) -> R:
        try:
            result = callback(repo)
        except Exception:
            scope.rollback()
            logger.warning("repository.transaction_rolled_back", extra={"table": self.table_name})
            raise
        scope.commit()
        return result

    def _bound_to(self: RepoT, conn: Connection) -> RepoT:
        clone = copy.copy(self)
        clone._bind = conn
        return clone

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if isinstance(self._bind, Connection):
            yield self._bind
            return
        with self._bind.begin() as conn:
            yield conn

    def _execute(self, conn: Connection, statement: Executable, operation: str) -> CursorResult[Any]:
        observe_repository_statement(self.table_name, operation)
        return conn.execute(statement)


def _require_non_negative(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RepositoryValidationError(f"{name} must be a non-negative integer")


def _rows(result: CursorResult[Any]) -> list[Row]:
    return [dict(row._mapping) for row in result]


def _first(result: CursorResult[Any]) -> Row | None:
    row = result.first()
    return dict(row._mapping) if row is not None else None
