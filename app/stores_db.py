"""Postgres-backed relational store: schema introspection and row CRUD."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Tuple

from psycopg2 import sql

from apigen.structure_hash import structure_hash
from app.db import execute, fetch_all, fetch_one, get_conn

logger = logging.getLogger("apigen.store.db")

ID_COLUMN = "id"

# information_schema.columns.data_type -> field type tag
_FIELD_TYPES: Dict[str, str] = {
    "smallint": "SmallInt",
    "integer": "Integer",
    "bigint": "BigInt",
    "character varying": "String",
    "character": "String",
    "text": "Text",
    "boolean": "Boolean",
    "real": "Float",
    "double precision": "Float",
    "numeric": "Decimal",
    "money": "Decimal",
    "date": "Date",
    "timestamp without time zone": "DateTime",
    "timestamp with time zone": "DateTime",
    "time without time zone": "Time",
    "time with time zone": "Time",
    "json": "Json",
    "jsonb": "Json",
    "uuid": "Uuid",
    "bytea": "Binary",
}

Statement = Tuple[sql.Composable, List[Any]]


def field_type_for(data_type: str | None) -> str:
    if not isinstance(data_type, str):
        return "Unknown"
    return _FIELD_TYPES.get(data_type.strip().lower(), "Unknown")


def _table(schema: str, module: str) -> sql.Identifier:
    return sql.Identifier(schema, module)


def _id_match(record_id: Any) -> sql.Composed:
    # String ids compare as text, so a non-numeric id matches no row of an integer-keyed table.
    if isinstance(record_id, str):
        return sql.SQL("{}::text = {}").format(sql.Identifier(ID_COLUMN), sql.Placeholder())
    return sql.SQL("{} = {}").format(sql.Identifier(ID_COLUMN), sql.Placeholder())


def select_statement(schema: str, module: str, record_id: Any = None, *, by_id: bool = False) -> Statement:
    query = sql.SQL("SELECT * FROM {}").format(_table(schema, module))
    if not by_id:
        return query, []
    query = sql.SQL("{} WHERE {}").format(query, _id_match(record_id))
    return query, [record_id]


def insert_statement(schema: str, module: str, params: Mapping[str, Any]) -> Statement:
    if not params:
        query = sql.SQL("INSERT INTO {} DEFAULT VALUES RETURNING *").format(_table(schema, module))
        return query, []
    columns = list(params.keys())
    query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
        _table(schema, module),
        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        sql.SQL(", ").join(sql.Placeholder() for _ in columns),
    )
    return query, [params[c] for c in columns]


def update_statement(schema: str, module: str, record_id: Any, params: Mapping[str, Any]) -> Statement | None:
    if not params:
        return None
    columns = list(params.keys())
    assignments = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder()) for c in columns
    )
    query = sql.SQL("UPDATE {} SET {} WHERE {}").format(
        _table(schema, module),
        assignments,
        _id_match(record_id),
    )
    return query, [params[c] for c in columns] + [record_id]


def delete_statement(schema: str, module: str, record_id: Any) -> Statement:
    query = sql.SQL("DELETE FROM {} WHERE {}").format(_table(schema, module), _id_match(record_id))
    return query, [record_id]


class DbRelationalStore:
    """Relational store over the tables of one Postgres schema.

    Table and column names are always quoted as identifiers and every value
    is bound through the driver, never interpolated into the statement.
    """

    def __init__(self, schema: str | None = None) -> None:
        self._schema = schema or os.getenv("APIGEN_DB_SCHEMA", "public").strip() or "public"

    @property
    def schema(self) -> str:
        return self._schema

    def list_tables(self) -> list[str]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select table_name
                from information_schema.tables
                where table_schema=%s and table_type='BASE TABLE'
                order by table_name
                """,
                [self._schema],
                query_name="schema.list_tables",
            )
        return [row["table_name"] for row in rows]

    def list_columns(self, table: str) -> dict[str, str]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select column_name, data_type
                from information_schema.columns
                where table_schema=%s and table_name=%s
                order by ordinal_position
                """,
                [self._schema, table],
                query_name="schema.list_columns",
            )
        return {row["column_name"]: field_type_for(row.get("data_type")) for row in rows}

    def schema_fingerprint(self) -> str:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select t.table_name, c.column_name, c.data_type
                from information_schema.tables t
                left join information_schema.columns c
                  on c.table_schema=t.table_schema and c.table_name=t.table_name
                where t.table_schema=%s and t.table_type='BASE TABLE'
                order by t.table_name, c.ordinal_position
                """,
                [self._schema],
                query_name="schema.fingerprint",
            )
        structure: Dict[str, Dict[str, str]] = {}
        for row in rows:
            columns = structure.setdefault(row["table_name"], {})
            if row.get("column_name") is not None:
                columns[row["column_name"]] = field_type_for(row.get("data_type"))
        return structure_hash(structure)

    def select_all(self, module: str) -> list[dict]:
        statement, params = select_statement(self._schema, module)
        with get_conn() as conn:
            return fetch_all(conn, statement, params, query_name=f"{module}.select_all")

    def select_by_id(self, module: str, record_id: Any) -> list[dict]:
        statement, params = select_statement(self._schema, module, record_id, by_id=True)
        with get_conn() as conn:
            return fetch_all(conn, statement, params, query_name=f"{module}.select_by_id")

    def insert(self, module: str, params: Mapping[str, Any]) -> Any:
        statement, values = insert_statement(self._schema, module, params)
        with get_conn() as conn:
            row = fetch_one(conn, statement, values, query_name=f"{module}.insert")
        if not row:
            return None
        return row.get(ID_COLUMN)

    def update_by_id(self, module: str, record_id: Any, params: Mapping[str, Any]) -> int:
        built = update_statement(self._schema, module, record_id, params)
        if built is None:
            logger.debug("update_noop module=%s id=%s", module, record_id)
            return 0
        statement, values = built
        with get_conn() as conn:
            return execute(conn, statement, values, query_name=f"{module}.update_by_id")

    def delete_by_id(self, module: str, record_id: Any) -> int:
        statement, values = delete_statement(self._schema, module, record_id)
        with get_conn() as conn:
            return execute(conn, statement, values, query_name=f"{module}.delete_by_id")
