from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from datetime import date, timedelta
from typing import Any

from pydantic import TypeAdapter, ValidationError

from src.config import EngineConfig
from src.practice.domain.models import (
    Achievement,
    ChallengeStreak,
    ExerciseAttempt,
    ExerciseProgress,
    LearnerStatistics,
    ProgressStatus,
)
from src.practice.domain.ports import IProgressRepository
from src.practice.domain.rotation import ChallengeRotator
from src.practice.domain.scoring import ratio_score, round_half_up
from src.shared.telemetry import Telemetry, measure_time

_ATTEMPTS_ADAPTER = TypeAdapter(list[ExerciseAttempt])

# (name, description, icon, predicate over (statistics, exercise streak, has perfect score))
_ACHIEVEMENTS: list[tuple[str, str, str, Callable[[LearnerStatistics, int, bool], bool]]] = [
    ("First Steps", "Complete your first exercise", "🎯", lambda s, _, __: s.completed_count >= 1),
    ("Getting Started", "Complete 5 exercises", "🌱", lambda s, _, __: s.completed_count >= 5),
    ("Practice Makes Perfect", "Complete 10 exercises", "⚡", lambda s, _, __: s.completed_count >= 10),
    ("Master of One", "Master your first exercise", "⭐", lambda s, _, __: s.mastered_count >= 1),
    ("Week Warrior", "7-day exercise streak", "🔥", lambda _, streak, __: streak >= 7),
    ("XP Hunter", "Earn 1000 XP", "💎", lambda s, _, __: s.total_xp >= 1000),
    ("Perfect Score", "Get 100% on any exercise", "💯", lambda _, __, perfect: perfect),
]


def fold_progress(
    user_id: str, exercise_id: str, attempts: Iterable[ExerciseAttempt]
) -> ExerciseProgress:
    """
    Rebuilds the aggregate for one (user, exercise) pair from its attempts,
    oldest first. Completion and mastery, once reached, stay reached.
    """
    progress = ExerciseProgress(user_id=user_id, exercise_id=exercise_id)
    history: list[ExerciseAttempt] = []
    total_score = 0

    for attempt in attempts:
        history.append(attempt)
        result = attempt.result
        total_score += result.score

        progress.attempts_count += 1
        progress.total_xp_earned += attempt.earned_xp
        progress.best_score = max(progress.best_score, result.score)
        progress.last_attempt_at = attempt.timestamp

        if result.is_correct:
            progress.successful_attempts += 1
            if not progress.completed:
                progress.completed = True
                progress.completed_at = attempt.timestamp

        if progress.mastered_at is None and _is_mastered(history):
            progress.mastered_at = attempt.timestamp

    if progress.attempts_count:
        progress.average_score = round_half_up(total_score / progress.attempts_count)
    return progress


def _is_mastered(history: list[ExerciseAttempt]) -> bool:
    window = history[-EngineConfig.MASTERY_WINDOW :]
    perfect = [
        a
        for a in window
        if a.result.score == EngineConfig.PERFECT_SCORE
        and a.hints_used <= EngineConfig.MASTERY_MAX_HINTS
    ]
    return len(perfect) >= EngineConfig.MASTERY_PERFECT_ATTEMPTS


class ProgressLedger:
    """
    In-process store for one learner session: the append-only attempt log,
    the per-exercise aggregates and the challenge streaks.

    Local state is updated first; the repository (if any) is written after,
    fire-and-forget, optionally on `executor`.
    """

    def __init__(
        self,
        repo: IProgressRepository | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.repo = repo
        self._executor = executor
        self._attempts: list[ExerciseAttempt] = []
        self._progress: dict[tuple[str, str], ExerciseProgress] = {}
        self._streaks: dict[str, ChallengeStreak] = {}
        self.telemetry = Telemetry("ProgressLedger")

    # --- Attempts & Progress ---

    @measure_time("record_attempt")
    def record_attempt(self, attempt: ExerciseAttempt) -> ExerciseProgress:
        self._attempts.append(attempt)
        progress = self._refold(attempt.user_id, attempt.exercise_id)

        self._dispatch("save_attempt", attempt)
        self._dispatch("save_progress", progress)
        return progress

    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        progress = self._progress.get((user_id, exercise_id))
        return progress.model_copy() if progress else None

    def history(self, user_id: str, exercise_id: str) -> list[ExerciseAttempt]:
        return [
            a
            for a in self._attempts
            if a.user_id == user_id and a.exercise_id == exercise_id
        ]

    def recent_attempts(self, user_id: str, limit: int = 10) -> list[ExerciseAttempt]:
        mine = [a for a in self._attempts if a.user_id == user_id]
        return sorted(mine, key=lambda a: a.timestamp, reverse=True)[:limit]

    def best_attempt(self, user_id: str, exercise_id: str) -> ExerciseAttempt | None:
        history = self.history(user_id, exercise_id)
        if not history:
            return None
        # max() keeps the earliest attempt among equal scores
        return max(history, key=lambda a: a.result.score)

    def fastest_completion(self, user_id: str, exercise_id: str) -> int | None:
        solved = [
            a.time_spent_seconds
            for a in self.history(user_id, exercise_id)
            if a.result.is_correct
        ]
        return min(solved) if solved else None

    def reset_progress(self, user_id: str, exercise_id: str | None = None) -> None:
        """Forgets local progress for one exercise, or all of a user's."""

        def matches(user: str, exercise: str) -> bool:
            return user == user_id and (exercise_id is None or exercise == exercise_id)

        self._attempts = [
            a for a in self._attempts if not matches(a.user_id, a.exercise_id)
        ]
        for key in [k for k in self._progress if matches(*k)]:
            del self._progress[key]
        self.telemetry.log_info("Progress Reset", user_id=user_id, exercise_id=exercise_id)

    def restore(self, user_id: str, attempts: Iterable[ExerciseAttempt]) -> None:
        """Replaces a user's local state with a loaded history. Nothing is synced."""
        self.reset_progress(user_id)
        loaded = sorted(
            (a for a in attempts if a.user_id == user_id), key=lambda a: a.timestamp
        )
        self._attempts.extend(loaded)
        for exercise_id in {a.exercise_id for a in loaded}:
            self._refold(user_id, exercise_id)

    # --- Statistics ---

    @measure_time("get_statistics")
    def get_statistics(self, user_id: str) -> LearnerStatistics:
        mine = [a for a in self._attempts if a.user_id == user_id]
        exercise_ids = list(dict.fromkeys(a.exercise_id for a in mine))
        folded = [
            fold_progress(user_id, ex_id, (a for a in mine if a.exercise_id == ex_id))
            for ex_id in exercise_ids
        ]

        completed = sum(1 for p in folded if p.completed)
        total_xp = sum(a.earned_xp for a in mine)
        return LearnerStatistics(
            user_id=user_id,
            exercises_count=len(folded),
            completed_count=completed,
            mastered_count=sum(1 for p in folded if p.status == ProgressStatus.MASTERED),
            in_progress_count=sum(
                1 for p in folded if p.status == ProgressStatus.IN_PROGRESS
            ),
            total_attempts=len(mine),
            total_xp=total_xp,
            average_score=(
                round_half_up(sum(a.result.score for a in mine) / len(mine)) if mine else 0
            ),
            completion_rate=ratio_score(completed, len(folded)),
            level=total_xp // EngineConfig.XP_PER_LEVEL + 1,
        )

    def exercise_streak(self, user_id: str, today: date | None = None) -> int:
        """Consecutive days, ending today or yesterday, with a first-time completion."""
        today = today or date.today()
        days = sorted(
            {
                p.completed_at.date()
                for (user, _), p in self._progress.items()
                if user == user_id and p.completed_at is not None
            },
            reverse=True,
        )
        if not days or (today - days[0]).days > 1:
            return 0

        streak = 1
        for newer, older in zip(days, days[1:]):
            if newer - older != timedelta(days=1):
                break
            streak += 1
        return streak

    def achievements(self, user_id: str, today: date | None = None) -> list[Achievement]:
        stats = self.get_statistics(user_id)
        streak = self.exercise_streak(user_id, today)
        perfect = any(
            a.result.score == EngineConfig.PERFECT_SCORE
            for a in self._attempts
            if a.user_id == user_id
        )
        return [
            Achievement(
                name=name,
                description=description,
                icon=icon,
                earned=earned(stats, streak, perfect),
            )
            for name, description, icon, earned in _ACHIEVEMENTS
        ]

    # --- Export / Import ---

    def export_json(self, user_id: str) -> str:
        mine = [a for a in self._attempts if a.user_id == user_id]
        return _ATTEMPTS_ADAPTER.dump_json(mine, indent=2).decode("utf-8")

    def import_json(self, user_id: str, payload: str) -> bool:
        try:
            attempts = _ATTEMPTS_ADAPTER.validate_json(payload)
        except ValidationError as e:
            self.telemetry.log_error("Progress import rejected", e, user_id=user_id)
            return False
        self.restore(user_id, attempts)
        return True

    # --- Challenge Streaks ---

    def get_streak(self, user_id: str) -> ChallengeStreak:
        if user_id not in self._streaks:
            self._streaks[user_id] = self._load_streak(user_id)
        return self._streaks[user_id]

    def has_completed_challenge(self, user_id: str, day: date) -> bool:
        return ChallengeRotator.has_completed_on(self.get_streak(user_id), day)

    @measure_time("complete_challenge")
    def complete_challenge(self, user_id: str, completion_date: date) -> ChallengeStreak:
        current = self.get_streak(user_id)
        advanced = ChallengeRotator.advance_streak(current, completion_date)
        if advanced is current:
            self.telemetry.log_info(
                "Duplicate Challenge Completion", user_id=user_id, date=completion_date
            )
            return current

        self._streaks[user_id] = advanced
        self.telemetry.log_info(
            "Streak Advanced", user_id=user_id, current=advanced.current_streak
        )
        self._dispatch("save_streak", advanced)
        return advanced

    # --- Internals ---

    def _refold(self, user_id: str, exercise_id: str) -> ExerciseProgress:
        progress = fold_progress(user_id, exercise_id, self.history(user_id, exercise_id))
        self._progress[(user_id, exercise_id)] = progress
        return progress.model_copy()

    def _load_streak(self, user_id: str) -> ChallengeStreak:
        if self.repo is not None:
            try:
                stored = self.repo.get_streak(user_id)
                if stored is not None:
                    return stored
            except Exception as e:
                self.telemetry.log_error("Streak load failed", e, user_id=user_id)
        return ChallengeStreak(user_id=user_id)

    def _dispatch(self, method: str, record: Any) -> None:
        if self.repo is None:
            return

        def write() -> None:
            try:
                getattr(self.repo, method)(record)
            except Exception as e:
                # Remote failures stay off the grading path
                self.telemetry.log_error(f"Sync failed: {method}", e)

        if self._executor is not None:
            self._executor.submit(write)
        else:
            write()
