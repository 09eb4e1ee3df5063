from abc import ABC, abstractmethod

from src.practice.domain.models import ChallengeStreak, ExerciseAttempt, ExerciseProgress


class IProgressRepository(ABC):
    """
    Durable store for ledger records, keyed by the opaque user id.
    Writes may fail; the ledger never lets that reach grading.
    """

    @abstractmethod
    def save_attempt(self, attempt: ExerciseAttempt) -> None:
        pass

    @abstractmethod
    def save_progress(self, progress: ExerciseProgress) -> None:
        pass

    @abstractmethod
    def save_streak(self, streak: ChallengeStreak) -> None:
        pass

    @abstractmethod
    def get_progress(self, user_id: str, exercise_id: str) -> ExerciseProgress | None:
        """Last synced aggregate for one exercise, or None."""
        pass

    @abstractmethod
    def get_streak(self, user_id: str) -> ChallengeStreak | None:
        pass

    @abstractmethod
    def load_attempts(self, user_id: str) -> list[ExerciseAttempt]:
        """
        Full attempt history for a user, oldest first.
        Used to rebuild the ledger on login.
        """
        pass
