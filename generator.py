"""Per-request coordinator: build structure, dispatch, hand off to a responder."""

from __future__ import annotations

from typing import Any, Dict, Iterable

from dispatcher import ApiRequest, Dispatcher
from request_handlers import RecordId, Result, default_handlers
from structure_builder import Structure, StructureBuilder


class Generator:
    """Serve one API call against ``store``.

    A Generator keeps the structure of its last ``generate()`` call, so create
    one per request rather than sharing it between concurrent requests.
    ``responder`` needs a ``send(result)`` method; without one, ``api()``
    returns the plain result.
    """

    def __init__(self, store: Any, responder: Any | None = None, handlers: Iterable[Any] | None = None) -> None:
        self._store = store
        self._responder = responder
        self._dispatcher = Dispatcher(handlers if handlers is not None else default_handlers(store))
        self._api_structure: Structure = {}

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def generate(self) -> Structure:
        self._api_structure = StructureBuilder(self._store).build()
        return self._api_structure

    def get_api_structure(self) -> Structure:
        return self._api_structure

    def handle(self, request: ApiRequest) -> Result:
        structure = self.generate()
        return self._dispatcher.route(structure, request)

    def api(
        self,
        method: str,
        module: str | None,
        record_id: RecordId = None,
        params: Dict[str, Any] | None = None,
    ) -> Any:
        request = ApiRequest(method=method, module=module, id=record_id, params=params or {})
        result = self.handle(request)
        if self._responder is None:
            return result
        return self._responder.send(result)
