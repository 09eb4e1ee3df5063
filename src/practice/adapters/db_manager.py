import os
import sqlite3

from src.shared.telemetry import Telemetry, measure_time


class DatabaseManager:
    """
    Responsible for:
    1. Managing the SQLite connection lifecycle.
    2. Initializing the ledger schema (DDL).
    """

    def __init__(self, db_path: str = "data/practice.db") -> None:
        self.db_path = db_path
        self.telemetry = Telemetry("DatabaseManager")
        self._shared_connection: sqlite3.Connection | None = None

        self._ensure_db_exists()

        # In-memory databases vanish with their connection, keep one open
        if self.db_path == ":memory:":
            self._shared_connection = sqlite3.connect(
                ":memory:", check_same_thread=False
            )

        self._init_schema()

    def get_connection(self) -> sqlite3.Connection:
        """Returns a usable database connection, reconnecting if necessary."""
        if self._shared_connection:
            try:
                self._shared_connection.execute("SELECT 1")
                return self._shared_connection
            except sqlite3.ProgrammingError:
                # Closed externally
                self._shared_connection = None

        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")

        self._shared_connection = conn
        return conn

    def close(self) -> None:
        if self._shared_connection:
            self._shared_connection.close()
            self._shared_connection = None

    def _ensure_db_exists(self) -> None:
        if self.db_path == ":memory:":
            return
        dir_name = os.path.dirname(self.db_path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)

    @measure_time("db_init_schema")
    def _init_schema(self) -> None:
        conn = self.get_connection()
        try:
            # Append-only attempt log
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS exercise_attempts
                (
                    attempt_id  TEXT PRIMARY KEY,
                    user_id     TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    json_data   TEXT NOT NULL,
                    timestamp   DATETIME
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_attempts_user
                    ON exercise_attempts (user_id, timestamp)
                """
            )

            # Folded per-exercise aggregates
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS exercise_progress
                (
                    user_id     TEXT,
                    exercise_id TEXT,
                    json_data   TEXT NOT NULL,
                    updated_at  DATETIME DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, exercise_id)
                )
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS challenge_streaks
                (
                    user_id                    TEXT PRIMARY KEY,
                    current_streak             INTEGER DEFAULT 0,
                    longest_streak             INTEGER DEFAULT 0,
                    last_completed_date        DATE,
                    total_challenges_completed INTEGER DEFAULT 0
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("Schema Init Failed", e)
            raise
