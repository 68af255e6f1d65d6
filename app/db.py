"""DB helper for the Postgres relational store."""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
import contextvars
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2 import sql as pgsql
from psycopg2.pool import SimpleConnectionPool
import threading
import logging

from api_errors import StoreUnavailable


def get_db_url() -> str:
    url = os.getenv("APIGEN_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise StoreUnavailable("APIGEN_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


_POOL: SimpleConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_logger = logging.getLogger("apigen.db")
_CONNECTION_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)
_query_logger = logging.getLogger("apigen.db.query")
_DB_STATS: contextvars.ContextVar[dict] = contextvars.ContextVar("apigen_db_stats", default=None)
_SLOW_MS = float(os.getenv("APIGEN_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("APIGEN_QUERY_LOG", "").strip() == "1"


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, (bytes, bytearray, memoryview)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _log_query(
    *,
    query_name: str | None,
    params: Iterable[Any] | None,
    elapsed_ms: float,
    rowcount: int | None,
) -> None:
    if not _LOG_ALL and elapsed_ms < _SLOW_MS:
        return
    message = {
        "query": query_name or "unnamed",
        "ms": round(elapsed_ms, 2),
        "rowcount": rowcount,
        "params": _redact_params(params),
    }
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning("db_slow_query=%s", message)
    else:
        _query_logger.info("db_query=%s", message)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            return
        if minconn is None:
            minconn = int(os.getenv("APIGEN_DB_POOL_MIN", "1"))
        if maxconn is None:
            maxconn = int(os.getenv("APIGEN_DB_POOL_MAX", "10"))
        try:
            _POOL = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())
        except psycopg2.OperationalError as exc:
            raise StoreUnavailable(f"database unreachable: {exc}") from exc
        _logger.info("db_pool created min=%s max=%s", minconn, maxconn)


def close_pool() -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            _POOL.closeall()
            _POOL = None
            _logger.info("db_pool closed")


def reset_db_stats() -> None:
    _DB_STATS.set({"queries": 0, "acquire_ms": 0.0, "total_ms": 0.0})


def get_db_stats() -> dict:
    # Updated in place; worker threads run on a copy of the request context.
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        stats = {"queries": 0, "acquire_ms": 0.0, "total_ms": 0.0}
        _DB_STATS.set(stats)
    return stats


def _add_db_ms(delta: float) -> None:
    stats = get_db_stats()
    stats["total_ms"] = stats.get("total_ms", 0.0) + delta
    stats["queries"] = stats.get("queries", 0) + 1


def _add_acquire_ms(delta: float) -> None:
    stats = get_db_stats()
    stats["acquire_ms"] = stats.get("acquire_ms", 0.0) + delta


def _get_pool() -> SimpleConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


@contextmanager
def get_conn():
    pool = _get_pool()
    acquire_start = time.perf_counter()
    try:
        conn = pool.getconn()
    except psycopg2.OperationalError as exc:
        raise StoreUnavailable(f"database unreachable: {exc}") from exc
    _add_acquire_ms((time.perf_counter() - acquire_start) * 1000)
    _logger.debug("db_conn borrowed")
    try:
        yield conn
        conn.commit()
    except Exception as exc:
        try:
            conn.rollback()
        except psycopg2.Error as rollback_exc:
            _logger.warning("db_rollback_failed error=%s", rollback_exc)
        if isinstance(exc, _CONNECTION_ERRORS):
            raise StoreUnavailable(f"database connection lost: {exc}") from exc
        raise
    finally:
        # Broken connections are discarded instead of going back into the pool.
        pool.putconn(conn, close=bool(conn.closed))
        _logger.debug("db_conn returned")


def _run(conn, statement: str | pgsql.Composable, params: Iterable[Any] | None, fetch: str | None):
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(statement, params or [])
        if fetch == "all":
            result: Any = [dict(r) for r in cur.fetchall()]
        elif fetch == "one":
            row = cur.fetchone()
            result = dict(row) if row else None
        else:
            result = None
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _add_db_ms(elapsed_ms)
    return result, rowcount, elapsed_ms


def fetch_one(conn, statement: str | pgsql.Composable, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    result, rowcount, elapsed_ms = _run(conn, statement, params, "one")
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def fetch_all(conn, statement: str | pgsql.Composable, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    result, rowcount, elapsed_ms = _run(conn, statement, params, "all")
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def execute(conn, statement: str | pgsql.Composable, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    _, rowcount, elapsed_ms = _run(conn, statement, params, None)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return rowcount
