import sqlite3
from datetime import UTC, date, datetime, timedelta

import pytest

from src.practice.application.ledger import ProgressLedger
from src.practice.application.service import PracticeService
from src.practice.domain.models import ChallengeStreak, ExerciseAttempt, ExerciseProgress
from src.practice.domain.validators import failure_result, success_result


def _attempt(user_id: str, minutes: int, correct: bool = True) -> ExerciseAttempt:
    return ExerciseAttempt(
        user_id=user_id,
        exercise_id="cc-1",
        answer={"b1": "let"},
        result=success_result() if correct else failure_result("no", score=50),
        earned_xp=40,
        timestamp=datetime(2025, 3, 10, 9, 0, tzinfo=UTC) + timedelta(minutes=minutes),
    )


class TestAttempts:
    def test_save_and_load_in_time_order(self, in_memory_repo):
        late = _attempt("u1", 5)
        early = _attempt("u1", 0, correct=False)
        in_memory_repo.save_attempt(late)
        in_memory_repo.save_attempt(early)

        loaded = in_memory_repo.load_attempts("u1")

        assert loaded == [early, late]

    def test_saving_twice_keeps_one_row(self, in_memory_repo):
        record = _attempt("u1", 0)

        in_memory_repo.save_attempt(record)
        in_memory_repo.save_attempt(record)

        assert len(in_memory_repo.load_attempts("u1")) == 1

    def test_users_are_isolated(self, in_memory_repo):
        in_memory_repo.save_attempt(_attempt("u1", 0))

        assert in_memory_repo.load_attempts("u2") == []


class TestProgress:
    def test_upsert(self, in_memory_repo):
        in_memory_repo.save_progress(ExerciseProgress(user_id="u1", exercise_id="cc-1", attempts_count=1))
        in_memory_repo.save_progress(
            ExerciseProgress(user_id="u1", exercise_id="cc-1", attempts_count=2, completed=True)
        )

        stored = in_memory_repo.get_progress("u1", "cc-1")

        assert stored.attempts_count == 2
        assert stored.completed is True

    def test_missing(self, in_memory_repo):
        assert in_memory_repo.get_progress("u1", "nope") is None


class TestStreaks:
    def test_round_trip(self, in_memory_repo):
        streak = ChallengeStreak(
            user_id="u1",
            current_streak=3,
            longest_streak=10,
            last_completed_date=date(2025, 3, 10),
            total_challenges_completed=15,
        )

        in_memory_repo.save_streak(streak)

        assert in_memory_repo.get_streak("u1") == streak

    def test_fresh_streak_without_date(self, in_memory_repo):
        in_memory_repo.save_streak(ChallengeStreak(user_id="u1"))

        assert in_memory_repo.get_streak("u1").last_completed_date is None

    def test_unknown_user(self, in_memory_repo):
        assert in_memory_repo.get_streak("ghost") is None


class TestReadFailures:
    def test_reads_return_defaults_when_schema_is_gone(self, in_memory_repo, db_manager):
        db_manager.get_connection().execute("DROP TABLE challenge_streaks")
        db_manager.get_connection().execute("DROP TABLE exercise_attempts")

        assert in_memory_repo.get_streak("u1") is None
        assert in_memory_repo.load_attempts("u1") == []

    def test_writes_raise_when_schema_is_gone(self, in_memory_repo, db_manager):
        db_manager.get_connection().execute("DROP TABLE exercise_attempts")

        with pytest.raises(sqlite3.OperationalError):
            in_memory_repo.save_attempt(_attempt("u1", 0))


def test_session_survives_restart(in_memory_repo, rotator, code_completion_exercise):
    """
    GIVEN a learner who solved an exercise and a daily challenge
    WHEN a new session is built on the same database
    THEN progress and streak are restored from storage
    """
    first = PracticeService(ProgressLedger(in_memory_repo), rotator)
    first.submit("u1", code_completion_exercise, {"b1": "let", "b2": "u64"})
    challenge = first.todays_challenge(date(2025, 3, 10))
    first.complete_challenge("u1", challenge, 60, 0, completion_date=date(2025, 3, 10))

    second = PracticeService(ProgressLedger(in_memory_repo), rotator)
    loaded = second.load_user("u1")

    assert loaded == 1
    assert second.ledger.get_progress("u1", "cc-1").completed is True
    assert second.ledger.get_streak("u1").current_streak == 1
    assert second.ledger.has_completed_challenge("u1", date(2025, 3, 10)) is True
