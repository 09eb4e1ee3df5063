from datetime import date
from unittest.mock import Mock

import pytest

from src.practice.application.ledger import ProgressLedger
from src.practice.application.service import PracticeService
from src.practice.domain.models import (
    ChallengeStreak,
    CodeCompletionExercise,
    FeedbackType,
    ProgressStatus,
)
from src.practice.domain.validators import failure_result


@pytest.fixture
def service(ledger, rotator):
    return PracticeService(ledger, rotator)


class TestSubmit:
    def test_correct_answer(self, service, code_completion_exercise, sample_user_id):
        result = service.submit(
            sample_user_id, code_completion_exercise, {"b1": "let", "b2": "u64"}, time_spent_seconds=30
        )

        assert result.validation.is_correct is True
        assert result.feedback.type == FeedbackType.SUCCESS
        assert result.feedback.earned_xp == 125
        assert result.progress.completed is True
        assert result.progress.total_xp_earned == 125

    def test_attempt_is_recorded(self, service, multiple_choice_exercise, sample_user_id):
        service.submit(sample_user_id, multiple_choice_exercise, {"C", "A"}, hints_used=1)

        [stored] = service.ledger.history(sample_user_id, "mc-1")
        assert stored.answer == ["A", "C"]
        assert stored.hints_used == 1
        assert stored.earned_xp == 30

    def test_wrong_answer_still_earns_scaled_xp(self, service, multiple_choice_exercise, sample_user_id):
        result = service.submit(sample_user_id, multiple_choice_exercise, ["A"])

        assert result.feedback.type == FeedbackType.PARTIAL
        assert result.feedback.earned_xp == 15
        assert result.progress.status == ProgressStatus.IN_PROGRESS

    def test_malformed_mapping_is_recorded_as_failure(self, service, sample_user_id):
        result = service.submit(sample_user_id, {"id": "broken", "type": "essay"}, "answer")

        assert result.validation.score == 0
        assert result.feedback.type == FeedbackType.INCORRECT
        assert result.feedback.earned_xp == 0
        assert result.progress.exercise_id == "broken"

    @pytest.mark.parametrize("exercise", [None, ["not", "a", "dict"], 42])
    def test_non_exercise_input_is_recorded_as_failure(self, service, sample_user_id, exercise):
        result = service.submit(sample_user_id, exercise, "x")

        assert result.validation.score == 0
        assert result.feedback.type == FeedbackType.INCORRECT
        assert result.feedback.earned_xp == 0
        assert result.progress.exercise_id == "unknown"

    def test_half_built_exercise_is_recorded_as_failure(self, service, sample_user_id):
        exercise = CodeCompletionExercise.model_construct(id="cc-half")

        result = service.submit(sample_user_id, exercise, {})

        assert result.validation.score == 0
        assert result.feedback.earned_xp == 0
        assert result.progress.exercise_id == "cc-half"

    def test_negative_counters_are_clamped(self, service, output_prediction_exercise, sample_user_id):
        service.submit(sample_user_id, output_prediction_exercise, "42", hints_used=-1, time_spent_seconds=-5)

        [stored] = service.ledger.history(sample_user_id, "op-1")
        assert stored.hints_used == 0
        assert stored.time_spent_seconds == 0
        assert stored.earned_xp == 35

    def test_raw_mapping_exercise(self, service, sample_user_id):
        exercise = {
            "id": "op-raw",
            "type": "output_prediction",
            "base_xp": 20,
            "code": "1 + 1",
            "correct_output": "2",
        }

        result = service.submit(sample_user_id, exercise, "2", hints_used=2)

        assert result.validation.is_correct is True
        assert result.feedback.earned_xp == 20

    def test_statistics(self, service, code_completion_exercise, sample_user_id):
        service.submit(sample_user_id, code_completion_exercise, {"b1": "let", "b2": "u64"})

        stats = service.statistics(sample_user_id)

        assert stats.completed_count == 1
        assert stats.total_xp == 125


class TestLoadUser:
    def test_rebuilds_from_repository(self, service, mock_repo, code_completion_exercise):
        source = PracticeService(ProgressLedger(), service.rotator)
        source.submit("u1", code_completion_exercise, {"b1": "let", "b2": "u64"})
        mock_repo.load_attempts.return_value = source.ledger.history("u1", "cc-1")

        loaded = service.load_user("u1")

        assert loaded == 1
        assert service.ledger.get_progress("u1", "cc-1").completed is True
        mock_repo.save_attempt.assert_not_called()

    def test_load_failure_keeps_session_usable(self, service, mock_repo):
        mock_repo.load_attempts.side_effect = ConnectionError("offline")

        assert service.load_user("u1") == 0

    def test_without_repository(self, rotator):
        assert PracticeService(ProgressLedger(), rotator).load_user("u1") == 0


class TestDailyChallenge:
    def test_todays_challenge(self, service):
        challenge = service.todays_challenge(date(2025, 1, 2))

        assert challenge.id == "challenge-002"
        assert challenge.date == date(2025, 1, 2)

    def test_check_challenge(self, service):
        challenge = service.todays_challenge(date(2025, 1, 1))

        assert service.check_challenge(challenge, challenge.solution).is_correct is True
        assert service.check_challenge(challenge, "nope").is_correct is False

    def test_completion_rewards_and_advances(self, service, mock_repo, sample_user_id):
        mock_repo.get_streak.return_value = ChallengeStreak(
            user_id=sample_user_id, current_streak=6, longest_streak=6, last_completed_date=date(2025, 3, 10)
        )
        challenge = service.todays_challenge(date(2025, 3, 11))

        completion = service.complete_challenge(
            sample_user_id, challenge, elapsed_seconds=120, hints_used=0, completion_date=date(2025, 3, 11)
        )

        assert completion.already_completed is False
        assert completion.streak.current_streak == 7
        assert completion.reward.streak_bonus == 50
        assert completion.reward.total_xp == 150

    def test_duplicate_completion_earns_nothing(self, service, sample_user_id):
        challenge = service.todays_challenge(date(2025, 3, 11))
        day = date(2025, 3, 11)

        service.complete_challenge(sample_user_id, challenge, 60, 0, completion_date=day)
        again = service.complete_challenge(sample_user_id, challenge, 60, 0, completion_date=day)

        assert again.already_completed is True
        assert again.reward.total_xp == 0
        assert again.streak.total_challenges_completed == 1


def test_custom_grader_is_used(ledger, rotator, code_completion_exercise):
    grader = Mock()
    grader.validate.return_value = failure_result("stub", score=10)
    service = PracticeService(ledger, rotator, grader=grader)

    result = service.submit("u1", code_completion_exercise, {})

    grader.validate.assert_called_once_with(code_completion_exercise, {})
    assert result.feedback.type == FeedbackType.INCORRECT
    assert result.feedback.earned_xp == 10
