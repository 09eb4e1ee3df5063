import json
import os
from typing import Any

from pydantic import TypeAdapter, ValidationError

from src.practice.domain.models import Challenge, ContentError, Exercise

_EXERCISES_ADAPTER = TypeAdapter(list[Exercise])
_CHALLENGES_ADAPTER = TypeAdapter(list[Challenge])


def _read_json(path: str) -> Any:
    if not os.path.exists(path):
        raise ContentError(f"Content file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ContentError(f"Invalid JSON in {path}: {e}") from e


def load_exercises(path: str) -> list[Exercise]:
    try:
        return _EXERCISES_ADAPTER.validate_python(_read_json(path))
    except ValidationError as e:
        raise ContentError(f"Invalid exercise content in {path}") from e


def load_rotation_table(path: str) -> list[Challenge]:
    """
    Challenges in rotation order. The `date` stored with each entry is
    replaced by the rotator when the challenge is selected.
    """
    try:
        table = _CHALLENGES_ADAPTER.validate_python(_read_json(path))
    except ValidationError as e:
        raise ContentError(f"Invalid challenge content in {path}") from e
    if not table:
        raise ContentError(f"Rotation table {path} is empty")
    return table


class ExerciseCatalog:
    """Read-only lookup over authored exercises."""

    def __init__(self, exercises: list[Exercise]) -> None:
        self._by_id: dict[str, Exercise] = {}
        for exercise in exercises:
            if exercise.id in self._by_id:
                raise ContentError(f"Duplicate exercise id: {exercise.id}")
            self._by_id[exercise.id] = exercise

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, exercise_id: str) -> Exercise | None:
        return self._by_id.get(exercise_id)

    def by_topic(self, topic: str) -> list[Exercise]:
        return [e for e in self._by_id.values() if e.topic == topic]

    def for_lesson(self, lesson_id: str) -> list[Exercise]:
        return [e for e in self._by_id.values() if e.lesson_id == lesson_id]
