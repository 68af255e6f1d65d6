"""Validate requests against a structure and dispatch them by HTTP verb."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping

from api_errors import IdRequired, InvalidMethod, ModuleNotFound, ModuleRequired
from request_handlers import RecordId, Result


AVAILABLE_REQUEST_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
MODULELESS_METHODS = frozenset({"OPTIONS"})
ID_METHODS = frozenset({"PUT", "PATCH", "DELETE"})
INTEGER_ID_TYPES = frozenset({"SmallInt", "Integer", "BigInt"})
TEXT_ID_TYPES = frozenset({"String", "Text", "Uuid"})

_logger = logging.getLogger("apigen.dispatch")


def coerce_id(field_type: str | None, record_id: RecordId) -> RecordId:
    """Match a path id to the type of the module's ``id`` column.

    Only ASCII decimal strings become ints, and only for integer columns;
    ints sent to a text column become strings. Anything else passes through
    unchanged.
    """
    if field_type in INTEGER_ID_TYPES:
        if isinstance(record_id, str) and record_id.isascii() and record_id.isdecimal():
            return int(record_id)
        return record_id
    if field_type in TEXT_ID_TYPES and isinstance(record_id, int) and not isinstance(record_id, bool):
        return str(record_id)
    return record_id


@dataclass(frozen=True)
class ApiRequest:
    """One inbound call, built once by the transport adapter.

    The method is checked here, so an unsupported verb fails before any
    structure lookup or store access happens.
    """

    method: str
    module: str | None = None
    id: RecordId = None
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        method = self.method.upper() if isinstance(self.method, str) else self.method
        if method not in AVAILABLE_REQUEST_METHODS:
            raise InvalidMethod(f'Method "{self.method}" is not available')
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "params", dict(self.params or {}))


class Dispatcher:
    """Route an ApiRequest to the first registered handler that supports its verb.

    Handlers are tried in registration order. When two handlers support the
    same verb the one registered first always wins; the later one is never
    reached for that verb. A verb without any handler yields an empty result.
    """

    def __init__(self, handlers: Iterable[Any] | None = None) -> None:
        self._handlers: List[Any] = list(handlers or [])

    def register(self, handler: Any) -> "Dispatcher":
        self._handlers.append(handler)
        return self

    @property
    def handlers(self) -> tuple:
        return tuple(self._handlers)

    def handler_for(self, method: str) -> Any | None:
        for handler in self._handlers:
            if handler.supports(method):
                return handler
        return None

    def validate(self, structure: Mapping[str, Any], request: ApiRequest) -> None:
        if request.module is None:
            if request.method not in MODULELESS_METHODS:
                raise ModuleRequired(f'Method "{request.method}" requires a module')
            return
        if request.module not in structure:
            raise ModuleNotFound(f'Module "{request.module}" is not available in the API')
        if request.method in ID_METHODS and request.id is None:
            raise IdRequired(f'Method "{request.method}" requires a record id')

    def route(self, structure: Mapping[str, Any], request: ApiRequest) -> Result:
        self.validate(structure, request)
        if request.module is not None and request.id is not None:
            field_type = structure[request.module].get("id")
            request = replace(request, id=coerce_id(field_type, request.id))
        handler = self.handler_for(request.method)
        if handler is None:
            _logger.info("dispatch_unmapped method=%s module=%s", request.method, request.module)
            return []
        _logger.debug(
            "dispatch method=%s module=%s id=%s handler=%s",
            request.method,
            request.module,
            request.id,
            type(handler).__name__,
        )
        return handler.handle(request.module, request.id, request.params)
