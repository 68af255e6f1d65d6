"""Error taxonomy shared by the dispatcher, handlers and stores."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    message: str
    code: str = "API_ERROR"
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


@dataclass
class InvalidMethod(ApiError):
    code: str = "INVALID_METHOD"
    path: str | None = "method"


@dataclass
class ModuleNotFound(ApiError):
    code: str = "MODULE_NOT_FOUND"
    path: str | None = "module"


@dataclass
class ModuleRequired(ModuleNotFound):
    code: str = "MODULE_REQUIRED"


@dataclass
class StoreUnavailable(ApiError):
    code: str = "STORE_UNAVAILABLE"
    path: str | None = None


@dataclass
class IdRequired(ApiError):
    code: str = "ID_REQUIRED"
    path: str | None = "id"
