"""apigen kernel utilities."""

from .structure_hash import StructureHashError, structure_hash

__all__ = [
    "StructureHashError",
    "structure_hash",
]
