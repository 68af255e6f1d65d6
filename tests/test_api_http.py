import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

os.environ.setdefault("USE_DB", "0")

from fastapi.testclient import TestClient

import app.main as main
from app.stores import MemoryRelationalStore


class BrokenStore(MemoryRelationalStore):
    def select_all(self, module):
        raise RuntimeError("relation exploded")


class TestApiHttp(unittest.TestCase):
    def setUp(self) -> None:
        self._orig_store = main.store
        main.store = MemoryRelationalStore()
        main.store.create_table("users", {"id": "Integer", "name": "String"})
        self.client = TestClient(main.app)

    def tearDown(self) -> None:
        main.store = self._orig_store

    def test_crud_round_trip(self) -> None:
        res = self.client.post("/api/users", json={"name": "Jane"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "ok"})

        res = self.client.get("/api/users")
        rows = res.json()
        self.assertEqual(len(rows), 1)
        user_id = rows[0]["id"]

        res = self.client.get(f"/api/users/{user_id}")
        self.assertEqual(res.json(), [{"id": user_id, "name": "Jane"}])

        res = self.client.put(f"/api/users/{user_id}", json={"name": "Jane2"})
        self.assertEqual(res.json(), {"message": "ok"})
        self.assertEqual(self.client.get(f"/api/users/{user_id}").json()[0]["name"], "Jane2")

        res = self.client.patch(f"/api/users/{user_id}", json={"name": "Jane3"})
        self.assertEqual(res.json(), {"message": "ok"})
        self.assertEqual(self.client.get(f"/api/users/{user_id}").json()[0]["name"], "Jane3")

        res = self.client.delete(f"/api/users/{user_id}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [])
        self.assertEqual(self.client.get(f"/api/users/{user_id}").json(), [])

    def test_get_by_missing_id_is_empty_array(self) -> None:
        res = self.client.get("/api/users/999")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [])

    def test_put_with_empty_body_is_noop(self) -> None:
        main.store.insert("users", {"name": "Jane"})
        res = self.client.put("/api/users/1", json={})
        self.assertEqual(res.json(), {"message": "ok"})
        self.assertEqual(self.client.get("/api/users/1").json()[0]["name"], "Jane")

    def test_cors_headers_on_every_response(self) -> None:
        for res in (self.client.get("/api/users"), self.client.get("/api/orders")):
            self.assertEqual(res.headers["access-control-allow-origin"], "*")
            self.assertEqual(
                res.headers["access-control-allow-methods"],
                "GET, POST, PUT, PATCH, DELETE, OPTIONS",
            )
            self.assertIn("authorization", res.headers["access-control-allow-headers"])
            self.assertIn("content-type", res.headers["access-control-allow-headers"])

    def test_options_preflight(self) -> None:
        for path in ("/api", "/api/users", "/api/users/1"):
            res = self.client.options(path)
            self.assertEqual(res.status_code, 200, path)
            self.assertEqual(res.json(), [])
            self.assertEqual(res.headers["access-control-allow-origin"], "*")

    def test_unknown_module_is_404(self) -> None:
        res = self.client.get("/api/orders")
        self.assertEqual(res.status_code, 404)
        body = res.json()
        self.assertFalse(body["ok"])
        self.assertEqual(body["errors"][0]["code"], "MODULE_NOT_FOUND")

    def test_missing_module_is_404(self) -> None:
        res = self.client.get("/api")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["errors"][0]["code"], "MODULE_REQUIRED")

    def test_unsupported_method_is_405(self) -> None:
        res = self.client.request("TRACE", "/api/users")
        self.assertEqual(res.status_code, 405)
        self.assertEqual(res.json()["errors"][0]["code"], "INVALID_METHOD")

    def test_store_unavailable_is_503(self) -> None:
        main.store.set_available(False)
        res = self.client.get("/api/users")
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.json()["errors"][0]["code"], "STORE_UNAVAILABLE")

    def test_store_error_is_500(self) -> None:
        main.store = BrokenStore()
        main.store.create_table("users", {"id": "Integer"})
        client = TestClient(main.app, raise_server_exceptions=False)
        res = client.get("/api/users")
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json()["errors"][0]["code"], "INTERNAL_ERROR")

    def test_string_ids_stay_strings(self) -> None:
        main.store.create_table("tags", {"id": "String", "label": "String"})
        main.store.insert("tags", {"id": "abc", "label": "first"})
        res = self.client.get("/api/tags/abc")
        self.assertEqual(res.json(), [{"id": "abc", "label": "first"}])

    def test_digit_string_id_on_text_column(self) -> None:
        main.store.create_table("tags", {"id": "String", "label": "String"})
        main.store.insert("tags", {"id": "123", "label": "numeric"})
        res = self.client.get("/api/tags/123")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [{"id": "123", "label": "numeric"}])

    def test_non_ascii_digit_id_is_empty_collection(self) -> None:
        self.client.post("/api/users", json={"name": "Jane"})
        res = self.client.get("/api/users/\u00b2")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), [])

    def test_write_without_id_is_rejected(self) -> None:
        main.store.create_table("events", {"name": "String"})
        main.store.insert("events", {"name": "boot"})
        main.store.insert("events", {"name": "halt"})
        for method in ("DELETE", "PUT", "PATCH"):
            res = self.client.request(method, "/api/events", json={"name": "wiped"})
            self.assertEqual(res.status_code, 400)
            body = res.json()
            self.assertEqual(body["errors"][0]["code"], "ID_REQUIRED")
            self.assertEqual(body["errors"][0]["path"], "id")
            self.assertEqual(res.headers["access-control-allow-origin"], "*")
        self.assertEqual(self.client.get("/api/events").json(), [{"name": "boot"}, {"name": "halt"}])

    def test_query_params_used_when_body_missing(self) -> None:
        res = self.client.post("/api/users?name=Query")
        self.assertEqual(res.json(), {"message": "ok"})
        self.assertEqual(self.client.get("/api/users").json()[0]["name"], "Query")

    def test_structure_endpoint(self) -> None:
        main.store.create_table("orders", {"id": "Integer", "placed_at": "DateTime"})
        res = self.client.get("/structure")
        body = res.json()
        self.assertTrue(body["ok"])
        self.assertEqual(list(body["modules"].keys()), ["users", "orders"])
        self.assertEqual(list(body["modules"]["orders"].keys()), ["id", "placed_at"])
        self.assertTrue(body["fingerprint"].startswith("sha256:"))

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})


class TestBuildStore(unittest.TestCase):
    def test_wrappers_follow_flags(self) -> None:
        store = main.build_store(use_db=False, cache=True, log_calls=True)
        self.assertEqual(type(store).__name__, "CachingStore")
        self.assertEqual(type(store.inner).__name__, "LoggingStore")
        self.assertIsInstance(store.inner.inner, MemoryRelationalStore)


if __name__ == "__main__":
    unittest.main()
