"""JSON responder: CORS headers plus a serialized result body."""

from __future__ import annotations

from typing import Any, Dict

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "X-Requested-With, content-type, authorization, x-total-count",
}


class JsonResponder:
    def headers(self) -> Dict[str, str]:
        return dict(CORS_HEADERS)

    def send(self, data: Any, status: int = 200) -> JSONResponse:
        return JSONResponse(jsonable_encoder(data), status_code=status, headers=self.headers())

    def error(self, code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
        body = {
            "ok": False,
            "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
            "warnings": [],
        }
        return self.send(body, status=status)
