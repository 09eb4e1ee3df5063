import os
from datetime import date
from enum import Enum
from typing import Final


class StreakTier(Enum):
    # Enum Member = (minimum streak days, bonus XP, label)
    CENTURY = (100, 1000, "Century")
    TWO_MONTHS = (60, 400, "Two Months")
    MONTH = (30, 200, "Month")
    FORTNIGHT = (14, 100, "Fortnight")
    WEEK = (7, 50, "Week")

    def __init__(self, min_days: int, bonus_xp: int, label: str):
        self.min_days = min_days
        self.bonus_xp = bonus_xp
        self.label = label

    @classmethod
    def for_days(cls, days: int) -> "StreakTier | None":
        """Returns the highest tier reached by a streak, or None."""
        # Members are declared highest first
        for tier in cls:
            if days >= tier.min_days:
                return tier
        return None

    @classmethod
    def bonus_for(cls, days: int) -> int:
        tier = cls.for_days(days)
        return tier.bonus_xp if tier else 0


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_port(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw and raw.strip().isdigit() else None


class EngineConfig:
    # --- Infrastructure Switch ---
    USE_SQLITE: bool = _env_flag("PRACTICE_USE_SQLITE", True)
    DB_PATH: str = os.getenv("PRACTICE_DB_PATH", "data/practice.db")
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

    # --- Observability ---
    METRICS_PORT: int | None = _env_port("PRACTICE_METRICS_PORT")

    # --- Content ---
    EXERCISES_FILE = "data/exercises.json"
    CHALLENGES_FILE = "data/daily_challenges.json"

    # --- Grading Rules ---
    PERFECT_SCORE: Final[int] = 100
    PARTIAL_THRESHOLD: Final[int] = 50
    REVEAL_ANSWER_AFTER_HINTS: Final[int] = 2

    # --- Mastery Algorithm ---
    MASTERY_WINDOW = 5
    MASTERY_PERFECT_ATTEMPTS = 3
    MASTERY_MAX_HINTS = 1

    # --- Leveling ---
    XP_PER_LEVEL = 1000

    # --- Daily Challenges ---
    ROTATION_START: Final[date] = date(2025, 1, 1)
    CHALLENGE_TIME_BONUS_SECONDS = 180
