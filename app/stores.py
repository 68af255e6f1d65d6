"""In-memory relational store and composable store wrappers."""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Mapping

from api_errors import StoreUnavailable
from apigen.structure_hash import structure_hash


logger = logging.getLogger("apigen.store")

ID_COLUMN = "id"


class MemoryStoreError(Exception):
    """Raised for statements the in-memory store cannot execute."""


class MemoryRelationalStore:
    """Dict-backed stand-in for a relational database.

    Tables keep creation order and columns keep declaration order, mirroring
    what a real store reports. Tables with an ``id`` column get
    auto-increment ids on insert.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, dict] = {}
        self._available = True
        self._lock = threading.Lock()

    def create_table(self, name: str, columns: Mapping[str, str]) -> None:
        with self._lock:
            if name in self._tables:
                raise MemoryStoreError(f'relation "{name}" already exists')
            self._tables[name] = {"columns": dict(columns), "rows": [], "next_id": 1}

    def drop_table(self, name: str) -> None:
        with self._lock:
            if name not in self._tables:
                raise MemoryStoreError(f'relation "{name}" does not exist')
            del self._tables[name]

    def set_available(self, available: bool) -> None:
        self._available = available

    def _check(self) -> None:
        if not self._available:
            raise StoreUnavailable("memory store is unavailable")

    def _table(self, module: str) -> dict:
        table = self._tables.get(module)
        if table is None:
            raise MemoryStoreError(f'relation "{module}" does not exist')
        return table

    def _matches(self, table: dict, row: dict, record_id: Any) -> bool:
        # No id (or no id column) never matches, so by-id writes cannot hit every row.
        if record_id is None or ID_COLUMN not in table["columns"]:
            return False
        return row.get(ID_COLUMN) == record_id

    def _check_columns(self, module: str, table: dict, params: Mapping[str, Any]) -> None:
        for column in params:
            if column not in table["columns"]:
                raise MemoryStoreError(f'column "{column}" of relation "{module}" does not exist')

    def list_tables(self) -> list[str]:
        self._check()
        return list(self._tables.keys())

    def list_columns(self, table: str) -> dict[str, str]:
        self._check()
        return dict(self._table(table)["columns"])

    def schema_fingerprint(self) -> str:
        self._check()
        return structure_hash({name: table["columns"] for name, table in self._tables.items()})

    def select_all(self, module: str) -> list[dict]:
        self._check()
        return [copy.deepcopy(row) for row in self._table(module)["rows"]]

    def select_by_id(self, module: str, record_id: Any) -> list[dict]:
        self._check()
        table = self._table(module)
        return [copy.deepcopy(row) for row in table["rows"] if self._matches(table, row, record_id)]

    def insert(self, module: str, params: Mapping[str, Any]) -> Any:
        self._check()
        with self._lock:
            table = self._table(module)
            self._check_columns(module, table, params)
            row = {column: None for column in table["columns"]}
            row.update(copy.deepcopy(dict(params)))
            if ID_COLUMN not in table["columns"]:
                table["rows"].append(row)
                return None
            if row.get(ID_COLUMN) is None:
                row[ID_COLUMN] = table["next_id"]
            if isinstance(row[ID_COLUMN], int):
                table["next_id"] = max(table["next_id"], row[ID_COLUMN] + 1)
            table["rows"].append(row)
            return row[ID_COLUMN]

    def update_by_id(self, module: str, record_id: Any, params: Mapping[str, Any]) -> int:
        self._check()
        with self._lock:
            table = self._table(module)
            if not params:
                return 0
            self._check_columns(module, table, params)
            count = 0
            for row in table["rows"]:
                if self._matches(table, row, record_id):
                    row.update(copy.deepcopy(dict(params)))
                    count += 1
            return count

    def delete_by_id(self, module: str, record_id: Any) -> int:
        self._check()
        with self._lock:
            table = self._table(module)
            kept = [row for row in table["rows"] if not self._matches(table, row, record_id)]
            count = len(table["rows"]) - len(kept)
            table["rows"] = kept
            return count


class StoreWrapper:
    """Forward every store operation to ``inner``; subclasses layer behavior on top."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner

    @property
    def inner(self) -> Any:
        return self._inner

    def _call(self, op: str, *args: Any) -> Any:
        return getattr(self._inner, op)(*args)

    def list_tables(self) -> list[str]:
        return self._call("list_tables")

    def list_columns(self, table: str) -> dict[str, str]:
        return self._call("list_columns", table)

    def schema_fingerprint(self) -> str:
        return self._call("schema_fingerprint")

    def select_all(self, module: str) -> list[dict]:
        return self._call("select_all", module)

    def select_by_id(self, module: str, record_id: Any) -> list[dict]:
        return self._call("select_by_id", module, record_id)

    def insert(self, module: str, params: Mapping[str, Any]) -> Any:
        return self._call("insert", module, params)

    def update_by_id(self, module: str, record_id: Any, params: Mapping[str, Any]) -> int:
        return self._call("update_by_id", module, record_id, params)

    def delete_by_id(self, module: str, record_id: Any) -> int:
        return self._call("delete_by_id", module, record_id)


class LoggingStore(StoreWrapper):
    def _call(self, op: str, *args: Any) -> Any:
        target = args[0] if args else None
        start = time.perf_counter()
        try:
            result = super()._call(op, *args)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning("store_error op=%s target=%s ms=%.1f error=%s", op, target, elapsed_ms, exc)
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("store_call op=%s target=%s ms=%.1f", op, target, elapsed_ms)
        return result


class CachingStore(StoreWrapper):
    """Cache table and column listings keyed by the inner store's schema fingerprint.

    ``list_tables`` re-reads the fingerprint and drops the cache when it
    changed; ``list_columns`` serves from the cache filled since then. Row
    operations are never cached. Owned by the caller and safe to share.
    """

    def __init__(self, inner: Any) -> None:
        super().__init__(inner)
        self._lock = threading.Lock()
        self._fingerprint: str | None = None
        self._tables: List[str] | None = None
        self._columns: Dict[str, Dict[str, str]] = {}
        self.hits = 0
        self.misses = 0

    def invalidate(self) -> None:
        with self._lock:
            self._fingerprint = None
            self._tables = None
            self._columns = {}

    def list_tables(self) -> list[str]:
        fingerprint = self._inner.schema_fingerprint()
        with self._lock:
            if fingerprint == self._fingerprint and self._tables is not None:
                self.hits += 1
                return list(self._tables)
        tables = self._inner.list_tables()
        with self._lock:
            if fingerprint != self._fingerprint:
                logger.info("structure_cache_reset fingerprint=%s", fingerprint)
                self._columns = {}
            self._fingerprint = fingerprint
            self._tables = list(tables)
            self.misses += 1
        return list(tables)

    def list_columns(self, table: str) -> dict[str, str]:
        with self._lock:
            cached = self._columns.get(table)
            if cached is not None:
                self.hits += 1
                return dict(cached)
        columns = self._inner.list_columns(table)
        with self._lock:
            self._columns[table] = dict(columns)
            self.misses += 1
        return dict(columns)
