"""Build the module -> field type structure from a relational store."""

from __future__ import annotations

import logging
from typing import Any, Dict


Structure = Dict[str, Dict[str, str]]

_logger = logging.getLogger("apigen.structure")


class StructureBuilder:
    """Derive a fresh Structure from a store's table and column listing.

    The store only needs ``list_tables()`` and ``list_columns(table)``. Tables
    and columns keep the order the store reports them in. Store errors are
    not caught here.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    def build(self) -> Structure:
        tables = self._store.list_tables()
        structure: Structure = {}
        for table in tables:
            columns = self._store.list_columns(table)
            structure[table] = {name: str(field_type) for name, field_type in columns.items()}
        _logger.debug("structure_built modules=%s", len(structure))
        return structure
