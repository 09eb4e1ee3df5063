import math

from src.config import EngineConfig


def round_half_up(value: float) -> int:
    """Rounds halves up: round_half_up(12.5) == 13, unlike round()."""
    return math.floor(value + 0.5)


def ratio_score(part: float, whole: float) -> int:
    """Percentage of `part` in `whole`, rounded; 0 when `whole` is empty."""
    if whole <= 0:
        return 0
    return round_half_up(part * 100 / whole)


def partial_score(part: float, whole: float) -> int:
    """
    Score for a submission that is NOT fully correct.
    Clamped to [0, 99] so that 100 always means a correct answer.
    """
    return max(0, min(EngineConfig.PERFECT_SCORE - 1, ratio_score(part, whole)))
