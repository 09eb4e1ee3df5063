from collections.abc import Sequence
from datetime import date, datetime, time, timedelta

from src.config import EngineConfig, StreakTier
from src.practice.domain.models import (
    Challenge,
    ChallengeReward,
    ChallengeStreak,
    ChallengeType,
    ContentError,
    ValidationResult,
)
from src.practice.domain.normalizer import normalize, normalize_output
from src.practice.domain.validators import failure_result, success_result


class ChallengeRotator:
    """
    Pure Domain Logic.
    Maps calendar dates onto a fixed rotation table and applies the streak
    continuity rules. Holds no mutable state.
    """

    def __init__(
        self,
        rotation_table: Sequence[Challenge],
        rotation_start: date = EngineConfig.ROTATION_START,
    ) -> None:
        if not rotation_table:
            raise ContentError("Rotation table must contain at least one challenge")
        self._table = tuple(rotation_table)
        self.rotation_start = rotation_start

    def __len__(self) -> int:
        return len(self._table)

    # --- Date -> Challenge ---

    def index_for_date(self, day: date) -> int:
        days_elapsed = (day - self.rotation_start).days
        # Python's modulo is non-negative, so dates before the start still wrap
        return days_elapsed % len(self._table)

    def select_for_date(self, day: date) -> Challenge:
        """
        The challenge active on `day`, with its `date` set to `day`.
        Future dates are valid and give a preview of upcoming content.
        """
        return self._table[self.index_for_date(day)].model_copy(update={"date": day})

    def history(self, start: date, end: date) -> list[Challenge]:
        """Challenges for every day in [start, end]."""
        return [
            self.select_for_date(start + timedelta(days=offset))
            for offset in range((end - start).days + 1)
        ]

    def upcoming(self, days: int, today: date | None = None) -> list[Challenge]:
        today = today or date.today()
        return self.history(today, today + timedelta(days=days))

    @staticmethod
    def is_available(challenge_date: date, today: date | None = None) -> bool:
        return challenge_date <= (today or date.today())

    @staticmethod
    def time_until_next(now: datetime) -> timedelta:
        """Time left until the next challenge unlocks at midnight."""
        midnight = datetime.combine(
            now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo
        )
        return midnight - now

    # --- Streak State Machine ---

    @staticmethod
    def has_completed_on(streak: ChallengeStreak, day: date) -> bool:
        return streak.last_completed_date == day

    @staticmethod
    def advance_streak(streak: ChallengeStreak, completion_date: date) -> ChallengeStreak:
        """
        Applies one challenge completion to a streak.

        - Same day as the last completion: returned unchanged.
        - Day after the last completion: the streak continues (+1).
        - Anything else (gap, first completion, clock skew): restarts at 1.
        """
        last = streak.last_completed_date
        if last == completion_date:
            return streak

        if last is not None and last == completion_date - timedelta(days=1):
            current = streak.current_streak + 1
        else:
            current = 1

        return streak.model_copy(
            update={
                "current_streak": current,
                "longest_streak": max(streak.longest_streak, current),
                "last_completed_date": completion_date,
                "total_challenges_completed": streak.total_challenges_completed + 1,
            }
        )

    @staticmethod
    def bonus_xp_for_streak(days: int) -> int:
        return StreakTier.bonus_for(days)

    # --- Grading & Rewards ---

    @staticmethod
    def validate_submission(
        challenge: Challenge, submission: str | int | None
    ) -> ValidationResult:
        """
        Option index for multiple-choice output predictions, otherwise the
        submitted code compared to the solution with whitespace collapsed.
        """
        if (
            challenge.type == ChallengeType.OUTPUT_PREDICTION
            and challenge.multiple_choice_options
        ):
            if isinstance(submission, str):
                is_correct = normalize_output(submission) == normalize_output(
                    challenge.solution
                )
            else:
                is_correct = (
                    submission is not None
                    and submission == challenge.correct_option_index
                )
        elif isinstance(submission, str):
            is_correct = normalize(submission, case_sensitive=True) == normalize(
                challenge.solution, case_sensitive=True
            )
        else:
            is_correct = False

        if is_correct:
            return success_result("Challenge solved!")
        return failure_result("Not quite right. Try again or use a hint!")

    @classmethod
    def reward(
        cls,
        challenge: Challenge,
        elapsed_seconds: int,
        hints_used: int,
        streak_days: int,
    ) -> ChallengeReward:
        return ChallengeReward(
            base_xp=challenge.base_xp,
            time_bonus=(
                challenge.time_bonus
                if elapsed_seconds <= EngineConfig.CHALLENGE_TIME_BONUS_SECONDS
                else 0
            ),
            no_hint_bonus=challenge.no_hint_bonus if hints_used == 0 else 0,
            streak_bonus=cls.bonus_xp_for_streak(streak_days),
        )
