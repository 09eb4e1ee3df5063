from typing import Any, cast

from src.practice.domain.models import ChallengeStreak, ExerciseAttempt, ExerciseProgress
from src.practice.domain.ports import IProgressRepository
from src.shared.telemetry import Telemetry, measure_time
from supabase import Client, create_client


class SupabaseProgressRepository(IProgressRepository):
    ATTEMPTS_TABLE = "exercise_attempts"
    PROGRESS_TABLE = "exercise_progress"
    STREAKS_TABLE = "challenge_streaks"

    def __init__(self, url: str, key: str) -> None:
        self.telemetry = Telemetry("SupabaseRepository")
        try:
            self.client: Client = create_client(url, key)
        except Exception as e:
            self.telemetry.log_error("Failed to initialize Supabase client", e)
            raise

    @measure_time("sb_save_attempt")
    def save_attempt(self, attempt: ExerciseAttempt) -> None:
        payload = {
            "attempt_id": attempt.attempt_id,
            "user_id": attempt.user_id,
            "exercise_id": attempt.exercise_id,
            "json_data": attempt.model_dump(mode="json"),
            "timestamp": attempt.timestamp.isoformat(),
        }
        try:
            self.client.table(self.ATTEMPTS_TABLE).upsert(payload).execute()
        except Exception as e:
            self.telemetry.log_error("save_attempt failed", e, user_id=attempt.user_id)
            raise

    @measure_time("sb_save_progress")
    def save_progress(self, progress: ExerciseProgress) -> None:
        payload = {
            "user_id": progress.user_id,
            "exercise_id": progress.exercise_id,
            "json_data": progress.model_dump(mode="json"),
        }
        try:
            self.client.table(self.PROGRESS_TABLE).upsert(
                payload, on_conflict="user_id,exercise_id"
            ).execute()
        except Exception as e:
            self.telemetry.log_error("save_progress failed", e, user_id=progress.user_id)
            raise

    @measure_time("sb_save_streak")
    def save_streak(self, streak: ChallengeStreak) -> None:
        try:
            self.client.table(self.STREAKS_TABLE).upsert(
                streak.model_dump(mode="json")
            ).execute()
        except Exception as e:
            self.telemetry.log_error("save_streak failed", e, user_id=streak.user_id)
            raise

    @measure_time("sb_get_streak")
    def get_streak(self, user_id: str) -> ChallengeStreak | None:
        try:
            response = (
                self.client.table(self.STREAKS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .execute()
            )
            data = cast(list[dict[str, Any]], response.data)
            return ChallengeStreak.model_validate(data[0]) if data else None
        except Exception as e:
            self.telemetry.log_error("get_streak failed", e, user_id=user_id)
            return None

    @measure_time("sb_get_progress")
    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        try:
            response = (
                self.client.table(self.PROGRESS_TABLE)
                .select("json_data")
                .eq("user_id", user_id)
                .eq("exercise_id", exercise_id)
                .execute()
            )
            data = cast(list[dict[str, Any]], response.data)
            return ExerciseProgress.model_validate(data[0]["json_data"]) if data else None
        except Exception as e:
            self.telemetry.log_error("get_progress failed", e, user_id=user_id)
            return None

    @measure_time("sb_load_attempts")
    def load_attempts(self, user_id: str) -> list[ExerciseAttempt]:
        try:
            response = (
                self.client.table(self.ATTEMPTS_TABLE)
                .select("json_data")
                .eq("user_id", user_id)
                .order("timestamp")
                .execute()
            )
            data = cast(list[dict[str, Any]], response.data)
            return [ExerciseAttempt.model_validate(row["json_data"]) for row in data]
        except Exception as e:
            self.telemetry.log_error("load_attempts failed", e, user_id=user_id)
            return []
