import os
import sys
import unittest
from unittest.mock import MagicMock, patch


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

import psycopg2

import app.db as db
from api_errors import StoreUnavailable


def _pool_with(conn: MagicMock) -> MagicMock:
    pool = MagicMock()
    pool.getconn.return_value = conn
    return pool


class TestGetConn(unittest.TestCase):
    def setUp(self) -> None:
        db.reset_db_stats()

    def test_commit_and_return_on_success(self) -> None:
        conn = MagicMock(closed=0)
        pool = _pool_with(conn)
        with patch.object(db, "_get_pool", return_value=pool):
            with db.get_conn() as borrowed:
                self.assertIs(borrowed, conn)
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn, close=False)

    def test_query_error_rolls_back_and_propagates(self) -> None:
        conn = MagicMock(closed=0)
        pool = _pool_with(conn)
        with patch.object(db, "_get_pool", return_value=pool):
            with self.assertRaises(psycopg2.ProgrammingError):
                with db.get_conn():
                    raise psycopg2.ProgrammingError("column does not exist")
        conn.rollback.assert_called_once()
        pool.putconn.assert_called_once_with(conn, close=False)

    def test_dropped_connection_becomes_store_unavailable(self) -> None:
        conn = MagicMock(closed=2)
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
        pool = _pool_with(conn)
        with patch.object(db, "_get_pool", return_value=pool):
            with self.assertRaises(StoreUnavailable) as ctx:
                with db.get_conn():
                    raise psycopg2.OperationalError("server closed the connection unexpectedly")
        self.assertIsInstance(ctx.exception.__cause__, psycopg2.OperationalError)
        self.assertIn("server closed", ctx.exception.message)
        pool.putconn.assert_called_once_with(conn, close=True)

    def test_failed_rollback_keeps_original_error(self) -> None:
        conn = MagicMock(closed=0)
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
        pool = _pool_with(conn)
        with patch.object(db, "_get_pool", return_value=pool):
            with self.assertRaises(ValueError):
                with db.get_conn():
                    raise ValueError("bad row")
        pool.putconn.assert_called_once()

    def test_unreachable_pool_is_store_unavailable(self) -> None:
        pool = MagicMock()
        pool.getconn.side_effect = psycopg2.OperationalError("could not connect")
        with patch.object(db, "_get_pool", return_value=pool):
            with self.assertRaises(StoreUnavailable):
                with db.get_conn():
                    pass
        pool.putconn.assert_not_called()


if __name__ == "__main__":
    unittest.main()
