"""FastAPI app serving a REST API generated from the database schema."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import time
import logging

import anyio

from apigen.structure_hash import structure_hash
from api_errors import ApiError, InvalidMethod, ModuleNotFound, StoreUnavailable
from app.db import fetch_one, get_conn, get_db_stats, reset_db_stats
from app.responder import JsonResponder
from app.stores import CachingStore, LoggingStore, MemoryRelationalStore
from app.stores_db import DbRelationalStore
from dispatcher import AVAILABLE_REQUEST_METHODS
from generator import Generator


app = FastAPI(title="apigen")
logger = logging.getLogger("apigen")
logging.basicConfig(level=logging.INFO)

USE_DB = os.getenv("USE_DB", "").strip() == "1"
STRUCTURE_CACHE = os.getenv("APIGEN_STRUCTURE_CACHE", "").strip() == "1"
STORE_LOG = os.getenv("APIGEN_STORE_LOG", "").strip() == "1"
REQ_SLOW_MS = float(os.getenv("APIGEN_REQ_SLOW_MS", "250"))

# HEAD and TRACE are routed so they get the INVALID_METHOD envelope.
_ROUTED_METHODS = list(AVAILABLE_REQUEST_METHODS) + ["HEAD", "TRACE"]
_BODY_METHODS = {"POST", "PUT", "PATCH"}


def build_store(use_db: bool = USE_DB, cache: bool = STRUCTURE_CACHE, log_calls: bool = STORE_LOG) -> Any:
    store: Any = DbRelationalStore() if use_db else MemoryRelationalStore()
    if log_calls:
        store = LoggingStore(store)
    if cache:
        store = CachingStore(store)
    return store


store = build_store()
responder = JsonResponder()
logger.info("store=%s structure_cache=%s store_log=%s", type(store).__name__, STRUCTURE_CACHE, STORE_LOG)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_stats = get_db_stats()
    logger.info(
        "%s %s %s total_ms=%.1f db_ms=%.1f db_q=%s db_acquire_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        db_stats.get("total_ms", 0.0),
        db_stats.get("queries", 0),
        db_stats.get("acquire_ms", 0.0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s total_ms=%.1f status=%s",
            request.method,
            request.url.path,
            total_ms,
            response.status_code,
        )
    return response


def _status_for(exc: ApiError) -> int:
    if isinstance(exc, InvalidMethod):
        return 405
    if isinstance(exc, ModuleNotFound):
        return 404
    if isinstance(exc, StoreUnavailable):
        return 503
    return 400


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    status = _status_for(exc)
    if status >= 500:
        logger.error("api_error code=%s path=%s message=%s", exc.code, request.url.path, exc.message)
    else:
        logger.info("api_error code=%s path=%s message=%s", exc.code, request.url.path, exc.message)
    return responder.error(exc.code, exc.message, exc.path, status=status)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return responder.error("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


async def _safe_json(request: Request) -> Any:
    try:
        return await request.json()
    except Exception:
        return None


def _path_id(raw: str | None) -> str | None:
    # Typed against the id column by the dispatcher once the structure is known.
    if raw is None or raw == "":
        return None
    return raw


async def _request_params(request: Request) -> Dict[str, Any]:
    if request.method in _BODY_METHODS:
        body = await _safe_json(request)
        if isinstance(body, dict):
            return body
    return dict(request.query_params)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/ops/db_ping")
async def db_ping():
    if not USE_DB:
        return responder.error("DB_DISABLED", "USE_DB is not enabled", status=404)

    def _ping() -> None:
        with get_conn() as conn:
            fetch_one(conn, "select 1 as ok", query_name="ops.db_ping")

    start = time.perf_counter()
    await anyio.to_thread.run_sync(_ping)
    elapsed_ms = (time.perf_counter() - start) * 1000
    return {"ok": True, "ms": round(elapsed_ms, 2)}


@app.get("/structure")
async def get_structure() -> JSONResponse:
    generator = Generator(store)
    structure = await anyio.to_thread.run_sync(generator.generate)
    return responder.send({"ok": True, "modules": structure, "fingerprint": structure_hash(structure)})


@app.api_route("/api", methods=_ROUTED_METHODS)
@app.api_route("/api/{module}", methods=_ROUTED_METHODS)
@app.api_route("/api/{module}/{record_id}", methods=_ROUTED_METHODS)
async def api_endpoint(request: Request) -> JSONResponse:
    params = await _request_params(request)
    generator = Generator(store, responder)
    return await anyio.to_thread.run_sync(
        generator.api,
        request.method,
        request.path_params.get("module"),
        _path_id(request.path_params.get("record_id")),
        params,
    )
