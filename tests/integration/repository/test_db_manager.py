import os
import sqlite3

from src.practice.adapters.db_manager import DatabaseManager


class TestDatabaseManagerInit:
    def test_init_creates_file_db(self, tmp_path):
        """Test initialization creates database file."""
        db_path = str(tmp_path / "test.db")
        db = DatabaseManager(db_path)

        assert os.path.exists(db_path)
        db.close()

    def test_init_creates_directory_if_missing(self, tmp_path):
        db_path = str(tmp_path / "subdir" / "nested" / "test.db")
        db = DatabaseManager(db_path)

        assert os.path.exists(db_path)
        db.close()

    def test_init_memory_db_keeps_connection_open(self):
        db = DatabaseManager(":memory:")

        assert db._shared_connection is not None
        assert db._shared_connection.execute("SELECT 1").fetchone() == (1,)
        db.close()

    def test_init_creates_ledger_tables(self, tmp_path):
        db = DatabaseManager(str(tmp_path / "test.db"))
        conn = db.get_connection()

        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

        assert {"exercise_attempts", "exercise_progress", "challenge_streaks"} <= tables
        db.close()

    def test_schema_init_is_repeatable(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        DatabaseManager(db_path).close()

        db = DatabaseManager(db_path)

        assert db.get_connection().execute("SELECT count(*) FROM exercise_attempts").fetchone() == (0,)
        db.close()


class TestConnectionLifecycle:
    def test_get_connection_reuses_live_connection(self, db_manager):
        assert db_manager.get_connection() is db_manager.get_connection()

    def test_get_connection_reconnects_after_external_close(self, tmp_path):
        db = DatabaseManager(str(tmp_path / "test.db"))
        first = db.get_connection()
        first.close()

        second = db.get_connection()

        assert second is not first
        assert isinstance(second, sqlite3.Connection)
        db.close()

    def test_close_is_idempotent(self, db_manager):
        db_manager.close()
        db_manager.close()

        assert db_manager._shared_connection is None
