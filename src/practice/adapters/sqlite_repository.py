import sqlite3
from datetime import date

from src.practice.adapters.db_manager import DatabaseManager
from src.practice.domain.models import ChallengeStreak, ExerciseAttempt, ExerciseProgress
from src.practice.domain.ports import IProgressRepository
from src.shared.telemetry import Telemetry, measure_time


class SQLiteProgressRepository(IProgressRepository):
    def __init__(self, db_manager: DatabaseManager) -> None:
        self.telemetry = Telemetry("SQLiteRepository")
        self.db_manager = db_manager

    def _get_connection(self) -> sqlite3.Connection:
        return self.db_manager.get_connection()

    def _release(self, conn: sqlite3.Connection) -> None:
        if not self.db_manager._shared_connection:
            conn.close()

    @measure_time("db_save_attempt")
    def save_attempt(self, attempt: ExerciseAttempt) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO exercise_attempts
                    (attempt_id, user_id, exercise_id, json_data, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    attempt.attempt_id,
                    attempt.user_id,
                    attempt.exercise_id,
                    attempt.model_dump_json(),
                    attempt.timestamp.isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("save_attempt failed", e, user_id=attempt.user_id)
            raise
        finally:
            self._release(conn)

    @measure_time("db_save_progress")
    def save_progress(self, progress: ExerciseProgress) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO exercise_progress (user_id, exercise_id, json_data, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(user_id, exercise_id) DO UPDATE SET
                    json_data = excluded.json_data,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (progress.user_id, progress.exercise_id, progress.model_dump_json()),
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("save_progress failed", e, user_id=progress.user_id)
            raise
        finally:
            self._release(conn)

    @measure_time("db_save_streak")
    def save_streak(self, streak: ChallengeStreak) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO challenge_streaks
                    (user_id, current_streak, longest_streak,
                     last_completed_date, total_challenges_completed)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    streak.user_id,
                    streak.current_streak,
                    streak.longest_streak,
                    streak.last_completed_date.isoformat()
                    if streak.last_completed_date
                    else None,
                    streak.total_challenges_completed,
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("save_streak failed", e, user_id=streak.user_id)
            raise
        finally:
            self._release(conn)

    @measure_time("db_get_streak")
    def get_streak(self, user_id: str) -> ChallengeStreak | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT current_streak, longest_streak, last_completed_date,
                       total_challenges_completed
                FROM challenge_streaks
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        except sqlite3.Error as e:
            self.telemetry.log_error("get_streak failed", e, user_id=user_id)
            return None
        finally:
            self._release(conn)

        if not row:
            return None
        current, longest, last_completed, total = row
        return ChallengeStreak(
            user_id=user_id,
            current_streak=current,
            longest_streak=longest,
            last_completed_date=date.fromisoformat(last_completed)
            if last_completed
            else None,
            total_challenges_completed=total,
        )

    @measure_time("db_load_attempts")
    def load_attempts(self, user_id: str) -> list[ExerciseAttempt]:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                SELECT json_data
                FROM exercise_attempts
                WHERE user_id = ?
                ORDER BY timestamp
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            self.telemetry.log_error("load_attempts failed", e, user_id=user_id)
            return []
        finally:
            self._release(conn)

        return [ExerciseAttempt.model_validate_json(row[0]) for row in rows]

    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        """Last synced aggregate. The ledger refolds from attempts on load."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT json_data FROM exercise_progress WHERE user_id = ? AND exercise_id = ?",
                (user_id, exercise_id),
            ).fetchone()
        except sqlite3.Error as e:
            self.telemetry.log_error("get_progress failed", e, user_id=user_id)
            return None
        finally:
            self._release(conn)
        return ExerciseProgress.model_validate_json(row[0]) if row else None
