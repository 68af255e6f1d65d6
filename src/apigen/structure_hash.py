"""Structure fingerprinting utilities."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


class StructureHashError(TypeError):
    """Raised when a structure cannot be fingerprinted."""


def _ordered_pairs(structure: Mapping[str, Mapping[str, Any]]) -> list:
    pairs = []
    for module, fields in structure.items():
        if not isinstance(module, str):
            raise StructureHashError(f"Unsupported module name type: {type(module).__name__}")
        if not isinstance(fields, Mapping):
            raise StructureHashError(f"Fields of {module!r} must be a mapping")
        columns = []
        for name, field_type in fields.items():
            if not isinstance(name, str) or not isinstance(field_type, str):
                raise StructureHashError(f"Unsupported field entry at {module}.{name!r}")
            columns.append([name, field_type])
        pairs.append([module, columns])
    return pairs


def structure_hash(structure: Mapping[str, Mapping[str, Any]]) -> str:
    """Return the SHA-256 fingerprint of a structure.

    Table and column order are part of the fingerprint, so a reordered
    schema hashes differently from the original one.
    """
    data = json.dumps(
        _ordered_pairs(structure),
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"
