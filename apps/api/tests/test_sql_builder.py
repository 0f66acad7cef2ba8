from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.dialects import mysql, postgresql, sqlite

from salescrm.platform.security.errors import InvalidIdentifierError, InvalidTableError
from salescrm.platform.security.identifiers import (
    ALLOWED_TABLES,
    MAX_IDENTIFIER_LENGTH,
    ColumnName,
    TableName,
    is_valid_column_name,
    is_valid_table_name,
)
from salescrm.platform.security.sql import count_rows, delete_rows, exists_row, insert_row, select_rows, update_rows


CUSTOMERS = TableName("customers")


@pytest.mark.parametrize(
    "name",
    ["id", "_private", "owner_id", "a1", "x" * MAX_IDENTIFIER_LENGTH],
)
def test_valid_column_names(name: str) -> None:
    assert is_valid_column_name(name)
    assert ColumnName(name).construct().name == name


@pytest.mark.parametrize(
    "name",
    [
        "",
        "1abc",
        "Name",
        "name;DROP TABLE users",
        "name--",
        "na me",
        "name\n",
        "\tname",
        'name"',
        "x" * (MAX_IDENTIFIER_LENGTH + 1),
        None,
        42,
    ],
)
def test_invalid_column_names(name: object) -> None:
    assert not is_valid_column_name(name)
    with pytest.raises(InvalidIdentifierError):
        ColumnName(name)  # type: ignore[arg-type]


def test_table_names_come_from_allow_list() -> None:
    assert "customers" in ALLOWED_TABLES
    assert is_valid_table_name("customer_scores")
    for name in ["roles", "pg_catalog.pg_user", "customers;", "Customers", ""]:
        assert not is_valid_table_name(name)
        with pytest.raises(InvalidTableError):
            TableName(name)


def _compiled(statement: Any, dialect: Any = None) -> Any:
    return statement.compile(dialect=dialect or sqlite.dialect())


def test_select_binds_every_value() -> None:
    payload = "x' OR '1'='1"
    compiled = _compiled(
        select_rows(
            CUSTOMERS,
            where=[(ColumnName("owner_id"), payload)],
            order_by=[ColumnName("created_at")],
            descending=True,
            limit=10,
            offset=5,
        )
    )
    sql = str(compiled)

    assert payload not in sql
    assert "FROM customers" in sql
    assert "ORDER BY customers.created_at DESC" in sql
    assert "LIMIT" in sql and "OFFSET" in sql
    assert sorted(map(str, compiled.params.values())) == sorted([payload, "10", "5"])


def test_none_condition_renders_is_null() -> None:
    compiled = _compiled(count_rows(CUSTOMERS, where=[(ColumnName("owner_id"), None)]))
    assert "customers.owner_id IS NULL" in str(compiled)
    assert compiled.params == {}


def test_insert_and_update_shapes() -> None:
    insert = _compiled(insert_row(CUSTOMERS, [(ColumnName("id"), "c1"), (ColumnName("name"), "Acme")]))
    assert str(insert).startswith("INSERT INTO customers (id, name) VALUES")
    assert "RETURNING *" in str(insert)
    assert insert.params == {"id": "c1", "name": "Acme"}

    update = _compiled(update_rows(CUSTOMERS, [(ColumnName("name"), "Beta")], where=[(ColumnName("id"), "c1")]))
    assert str(update).startswith("UPDATE customers SET name=")
    assert "WHERE customers.id =" in str(update)
    assert "RETURNING *" in str(update)
    assert sorted(update.params.values()) == ["Beta", "c1"]


def test_identifier_quoting_follows_the_dialect() -> None:
    statement = select_rows(CUSTOMERS, where=[(ColumnName("order"), 1)])
    assert "`order`" in str(_compiled(statement, mysql.dialect()))
    assert '"order"' in str(_compiled(statement, postgresql.dialect()))
    assert '"order"' in str(_compiled(statement, sqlite.dialect()))


def test_exists_wraps_a_bound_subquery() -> None:
    compiled = _compiled(exists_row(CUSTOMERS, where=[(ColumnName("id"), "c1; DROP TABLE customers")]))
    assert "EXISTS" in str(compiled)
    assert "DROP" not in str(compiled)
    assert list(compiled.params.values()) == ["c1; DROP TABLE customers"]


def test_raw_strings_are_refused_in_identifier_positions() -> None:
    with pytest.raises(TypeError):
        select_rows("customers")  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        select_rows(CUSTOMERS, order_by=["created_at"])  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        count_rows(CUSTOMERS, where=[("status", "private")])  # type: ignore[list-item]


def test_unconditional_writes_are_refused() -> None:
    with pytest.raises(ValueError):
        delete_rows(CUSTOMERS, where=[])
    with pytest.raises(ValueError):
        update_rows(CUSTOMERS, [(ColumnName("name"), "x")], where=[])
    with pytest.raises(ValueError):
        insert_row(CUSTOMERS, [])
