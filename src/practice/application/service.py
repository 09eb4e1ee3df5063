from collections.abc import Mapping
from datetime import date
from typing import Any

from pydantic import BaseModel, ValidationError

from src.practice.application.ledger import ProgressLedger
from src.practice.domain.feedback import FeedbackComposer
from src.practice.domain.models import (
    EXERCISE_ADAPTER,
    Challenge,
    ChallengeCompletion,
    ChallengeReward,
    Exercise,
    ExerciseAttempt,
    ExerciseFeedback,
    ExerciseResult,
    LearnerStatistics,
    ValidationResult,
)
from src.practice.domain.rotation import ChallengeRotator
from src.practice.domain.validators import ExerciseGrader
from src.shared.telemetry import Telemetry, measure_time


class PracticeService:
    def __init__(
        self,
        ledger: ProgressLedger,
        rotator: ChallengeRotator,
        grader: ExerciseGrader | None = None,
    ):
        self.ledger = ledger
        self.rotator = rotator
        self.grader = grader or ExerciseGrader()
        self.telemetry = Telemetry("PracticeService")

    # --- Exercises ---

    @measure_time("submit_answer")
    def submit(
        self,
        user_id: str,
        exercise: Exercise | Mapping[str, Any],
        answer: Any,
        hints_used: int = 0,
        time_spent_seconds: int = 0,
    ) -> ExerciseResult:
        """
        Grades one submission, composes its feedback and records the attempt.
        A malformed exercise is recorded as an all-incorrect attempt.
        Negative counters from the UI are clamped to zero.
        """
        hints_used = max(hints_used, 0)
        time_spent_seconds = max(time_spent_seconds, 0)

        validation = self.grader.validate(exercise, answer)
        exercise_id, feedback = self._feedback(exercise, validation, hints_used)

        attempt = ExerciseAttempt(
            user_id=user_id,
            exercise_id=exercise_id,
            answer=self._storable(answer),
            result=validation,
            hints_used=hints_used,
            time_spent_seconds=time_spent_seconds,
            earned_xp=feedback.earned_xp,
        )
        progress = self.ledger.record_attempt(attempt)

        self.telemetry.log_info(
            "Answer Submitted",
            user_id=user_id,
            exercise_id=exercise_id,
            score=validation.score,
            feedback=feedback.type.value,
            xp=feedback.earned_xp,
        )
        return ExerciseResult(validation=validation, feedback=feedback, progress=progress)

    def statistics(self, user_id: str) -> LearnerStatistics:
        return self.ledger.get_statistics(user_id)

    @measure_time("load_user")
    def load_user(self, user_id: str) -> int:
        """Rebuilds the ledger from the repository. Returns the attempts loaded."""
        repo = self.ledger.repo
        if repo is None:
            return 0
        try:
            attempts = repo.load_attempts(user_id)
        except Exception as e:
            self.telemetry.log_error("History load failed", e, user_id=user_id)
            return 0

        self.ledger.restore(user_id, attempts)
        self.telemetry.log_info("History Loaded", user_id=user_id, attempts=len(attempts))
        return len(attempts)

    # --- Daily Challenges ---

    def todays_challenge(self, today: date | None = None) -> Challenge:
        return self.rotator.select_for_date(today or date.today())

    def check_challenge(
        self, challenge: Challenge, submission: str | int | None
    ) -> ValidationResult:
        return self.rotator.validate_submission(challenge, submission)

    @measure_time("complete_challenge")
    def complete_challenge(
        self,
        user_id: str,
        challenge: Challenge,
        elapsed_seconds: int,
        hints_used: int,
        completion_date: date | None = None,
    ) -> ChallengeCompletion:
        day = completion_date or date.today()

        if self.ledger.has_completed_challenge(user_id, day):
            self.telemetry.log_info(
                "Duplicate Challenge Attempt", user_id=user_id, challenge_id=challenge.id
            )
            return ChallengeCompletion(
                streak=self.ledger.get_streak(user_id),
                reward=ChallengeReward(),
                already_completed=True,
            )

        streak = self.ledger.complete_challenge(user_id, day)
        reward = self.rotator.reward(
            challenge, elapsed_seconds, hints_used, streak.current_streak
        )
        self.telemetry.log_info(
            "Challenge Completed",
            user_id=user_id,
            challenge_id=challenge.id,
            streak=streak.current_streak,
            xp=reward.total_xp,
        )
        return ChallengeCompletion(streak=streak, reward=reward)

    # --- Helpers ---

    def _feedback(
        self,
        exercise: Exercise | Mapping[str, Any],
        validation: ValidationResult,
        hints_used: int,
    ) -> tuple[str, ExerciseFeedback]:
        if isinstance(exercise, Mapping):
            raw_id = exercise.get("id")
            try:
                exercise = EXERCISE_ADAPTER.validate_python(exercise)
            except ValidationError:
                # Already logged by the grader
                return self._unscored(raw_id, validation, hints_used)

        if not isinstance(exercise, BaseModel):
            return self._unscored(None, validation, hints_used)

        try:
            feedback = FeedbackComposer.compose_for(exercise, validation, hints_used)
        except Exception as e:
            self.telemetry.log_error(
                "Feedback failed", e, exercise_id=getattr(exercise, "id", None)
            )
            return self._unscored(getattr(exercise, "id", None), validation, hints_used)
        return exercise.id, feedback

    @staticmethod
    def _unscored(
        exercise_id: Any, validation: ValidationResult, hints_used: int
    ) -> tuple[str, ExerciseFeedback]:
        feedback = FeedbackComposer.compose(validation, hints_used, base_xp=0)
        return str(exercise_id or "unknown"), feedback

    @staticmethod
    def _storable(answer: Any) -> Any:
        if isinstance(answer, BaseModel):
            return answer.model_dump()
        if isinstance(answer, (set, frozenset)):
            return sorted(answer, key=str)
        return answer
