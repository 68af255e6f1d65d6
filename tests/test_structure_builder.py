import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from api_errors import StoreUnavailable
from app.stores import MemoryRelationalStore
from structure_builder import StructureBuilder


class TestStructureBuilder(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryRelationalStore()
        self.store.create_table("users", {"id": "Integer", "name": "String", "bio": "Text"})
        self.store.create_table("orders", {"id": "Integer", "user_id": "Integer", "placed_at": "DateTime"})

    def test_modules_match_store_tables(self) -> None:
        structure = StructureBuilder(self.store).build()
        self.assertEqual(set(structure.keys()), set(self.store.list_tables()))

    def test_module_order_follows_store(self) -> None:
        structure = StructureBuilder(self.store).build()
        self.assertEqual(list(structure.keys()), ["users", "orders"])

    def test_fields_match_columns_in_order(self) -> None:
        structure = StructureBuilder(self.store).build()
        for module in structure:
            self.assertEqual(list(structure[module].keys()), list(self.store.list_columns(module).keys()))
        self.assertEqual(structure["users"], {"id": "Integer", "name": "String", "bio": "Text"})

    def test_empty_store_gives_empty_structure(self) -> None:
        structure = StructureBuilder(MemoryRelationalStore()).build()
        self.assertEqual(structure, {})

    def test_table_without_columns_is_kept(self) -> None:
        self.store.create_table("marker", {})
        structure = StructureBuilder(self.store).build()
        self.assertIn("marker", structure)
        self.assertEqual(structure["marker"], {})

    def test_each_build_is_fresh(self) -> None:
        builder = StructureBuilder(self.store)
        first = builder.build()
        self.store.create_table("notes", {"id": "Integer"})
        second = builder.build()
        self.assertNotIn("notes", first)
        self.assertIn("notes", second)

    def test_store_errors_propagate(self) -> None:
        self.store.set_available(False)
        with self.assertRaises(StoreUnavailable):
            StructureBuilder(self.store).build()


if __name__ == "__main__":
    unittest.main()
