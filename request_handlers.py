"""Per-verb request handlers over a relational store.

Each handler exposes ``supports(method)`` and ``handle(module, record_id, params)``.
Handlers hold no per-request state and can be shared between requests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Union


RecordId = Union[int, str, None]
Result = Union[List[Dict[str, Any]], Dict[str, Any]]

OK_PAYLOAD = {"message": "ok"}


class _MethodHandler:
    methods: tuple[str, ...] = ()

    def supports(self, method: str) -> bool:
        return method in self.methods

    def __repr__(self) -> str:
        return f"{type(self).__name__}(methods={self.methods!r})"


class GetRequestHandler(_MethodHandler):
    """Select every row, or the rows matching ``record_id``.

    GET by id answers with a list on purpose: clients always receive an
    array, even when at most one row can match.
    """

    methods = ("GET",)

    def __init__(self, store: Any) -> None:
        self._store = store

    def handle(self, module: str | None, record_id: RecordId, params: Mapping[str, Any]) -> Result:
        if record_id is not None:
            return self._store.select_by_id(module, record_id)
        return self._store.select_all(module)


class PostRequestHandler(_MethodHandler):
    methods = ("POST",)

    def __init__(self, store: Any) -> None:
        self._store = store

    def handle(self, module: str | None, record_id: RecordId, params: Mapping[str, Any]) -> Result:
        self._store.insert(module, params)
        return dict(OK_PAYLOAD)


class PutRequestHandler(_MethodHandler):
    """PUT and PATCH share one behavior: assign each given field on the row."""

    methods = ("PUT", "PATCH")

    def __init__(self, store: Any) -> None:
        self._store = store

    def handle(self, module: str | None, record_id: RecordId, params: Mapping[str, Any]) -> Result:
        self._store.update_by_id(module, record_id, params)
        return dict(OK_PAYLOAD)


class DeleteRequestHandler(_MethodHandler):
    methods = ("DELETE",)

    def __init__(self, store: Any) -> None:
        self._store = store

    def handle(self, module: str | None, record_id: RecordId, params: Mapping[str, Any]) -> Result:
        self._store.delete_by_id(module, record_id)
        return []


class OptionsRequestHandler(_MethodHandler):
    # CORS preflight; headers are emitted by the responder.
    methods = ("OPTIONS",)

    def handle(self, module: str | None, record_id: RecordId, params: Mapping[str, Any]) -> Result:
        return []


def default_handlers(store: Any) -> list:
    return [
        GetRequestHandler(store),
        PostRequestHandler(store),
        PutRequestHandler(store),
        DeleteRequestHandler(store),
        OptionsRequestHandler(),
    ]
