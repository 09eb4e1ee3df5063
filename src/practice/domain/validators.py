import random
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from src.config import EngineConfig
from src.practice.domain.models import (
    EXERCISE_ADAPTER,
    BugFixAnswer,
    BugFixExercise,
    ChoiceOption,
    CodeCompletionExercise,
    ContentError,
    Exercise,
    ExerciseType,
    MultipleChoiceExercise,
    OutputPredictionAnswer,
    OutputPredictionExercise,
    OutputType,
    PartialCredit,
    Severity,
    ValidationIssue,
    ValidationResult,
)
from src.practice.domain.normalizer import normalize, normalize_code, normalize_output
from src.practice.domain.scoring import partial_score
from src.shared.telemetry import Telemetry, measure_time


# --- Result Factories ---
def success_result(feedback: str = "Correct!") -> ValidationResult:
    return ValidationResult(
        is_correct=True, score=EngineConfig.PERFECT_SCORE, feedback=feedback
    )


def failure_result(
    feedback: str,
    score: int = 0,
    errors: list[ValidationIssue] | None = None,
    partial_credit: PartialCredit | None = None,
) -> ValidationResult:
    return ValidationResult(
        is_correct=False,
        score=score,
        feedback=feedback,
        errors=errors or None,
        partial_credit=partial_credit,
    )


def malformed_result() -> ValidationResult:
    return failure_result(
        "This exercise could not be graded.",
        errors=[
            ValidationIssue(
                location="exercise",
                message="The exercise definition is invalid or incomplete.",
            )
        ],
    )


def changed_line_numbers(original: str, modified: str) -> list[int]:
    """1-based numbers of lines whose trimmed text differs."""
    original_lines = original.split("\n")
    modified_lines = modified.split("\n")

    changed = []
    for i in range(max(len(original_lines), len(modified_lines))):
        before = original_lines[i].strip() if i < len(original_lines) else ""
        after = modified_lines[i].strip() if i < len(modified_lines) else ""
        if before != after:
            changed.append(i + 1)
    return changed


def shuffle_options(
    exercise: MultipleChoiceExercise, rng: random.Random | None = None
) -> list[ChoiceOption]:
    """
    Display order for the options. Pass a seeded `random.Random` for a
    reproducible order; the exercise's own option list is never touched.
    """
    options = list(exercise.options)
    if exercise.shuffle_options:
        (rng or random.Random()).shuffle(options)
    return options


# --- Interface ---
class IExerciseValidator(ABC):
    exercise_type: ExerciseType

    @abstractmethod
    def validate(self, exercise: Any, answer: Any) -> ValidationResult:
        pass


# --- Concrete Validators ---
class CodeCompletionValidator(IExerciseValidator):
    exercise_type = ExerciseType.CODE_COMPLETION

    def validate(
        self, exercise: CodeCompletionExercise, answer: Any
    ) -> ValidationResult:
        total = len(exercise.blanks)
        if total == 0:
            raise ContentError(f"{exercise.id} declares no blanks")

        answers: Mapping[str, Any] = answer if isinstance(answer, Mapping) else {}
        fallback_hint = exercise.hints[0] if exercise.hints else None

        correct = 0
        errors: list[ValidationIssue] = []
        for blank in exercise.blanks:
            raw = answers.get(blank.id)
            given = self._norm(exercise, "" if raw is None else str(raw))
            accepted = [blank.correct_answer, *blank.acceptable_answers]

            if any(self._norm(exercise, a) == given for a in accepted):
                correct += 1
            else:
                errors.append(
                    ValidationIssue(
                        location=f"Blank {blank.id}",
                        message="Expected something different",
                        hint=blank.hint or fallback_hint,
                    )
                )

        if correct == total:
            return success_result(f"Perfect! All {total} blanks filled correctly!")

        return failure_result(
            f"{correct} out of {total} correct. Keep trying!",
            score=partial_score(correct, total),
            errors=errors,
        )

    @staticmethod
    def _norm(exercise: CodeCompletionExercise, text: str) -> str:
        return normalize(
            text, case_sensitive=exercise.case_sensitive, strict=exercise.strict_mode
        )


class BugFixValidator(IExerciseValidator):
    exercise_type = ExerciseType.BUG_FIX

    def validate(self, exercise: BugFixExercise, answer: Any) -> ValidationResult:
        code = self._submitted_code(answer)
        if code is None:
            return failure_result(
                "No code was submitted.",
                errors=[ValidationIssue(message="Submit the corrected code.")],
            )

        total = len(exercise.bugs)
        if normalize_code(code) == normalize_code(exercise.correct_code):
            return success_result(f"Perfect! All {total} bugs fixed!")

        # Credit is attributed by diffing against the buggy original.
        changed = changed_line_numbers(exercise.buggy_code, code)
        fixed = [bug for bug in exercise.bugs if bug.line_number in changed]
        unfixed = [bug for bug in exercise.bugs if bug.line_number not in changed]

        errors = [
            ValidationIssue(
                location=f"Line {bug.line_number}",
                message=bug.description,
                hint=bug.hint,
            )
            for bug in unfixed
        ]
        if not errors:
            errors.append(
                ValidationIssue(
                    message="The code still differs from the expected fix.",
                    severity=Severity.WARNING,
                )
            )

        partial_credit = None
        if exercise.allow_partial_credit:
            partial_credit = PartialCredit(
                earned=len(fixed),
                possible=total,
                breakdown=[f"Fixed line {line}" for line in changed],
            )

        return failure_result(
            f"{len(fixed)} out of {total} bugs fixed. Keep trying!",
            score=partial_score(len(fixed), total),
            errors=errors,
            partial_credit=partial_credit,
        )

    @staticmethod
    def _submitted_code(answer: Any) -> str | None:
        if isinstance(answer, BugFixAnswer):
            return answer.fixed_code
        if isinstance(answer, str):
            return answer
        if isinstance(answer, Mapping) and isinstance(answer.get("fixed_code"), str):
            return answer["fixed_code"]
        return None


class MultipleChoiceValidator(IExerciseValidator):
    exercise_type = ExerciseType.MULTIPLE_CHOICE

    def validate(
        self, exercise: MultipleChoiceExercise, answer: Any
    ) -> ValidationResult:
        correct_ids = exercise.correct_option_ids
        if not correct_ids:
            raise ContentError(f"{exercise.id} has no correct option")

        selected = self._selected_ids(answer)
        total = len(correct_ids)

        if selected == correct_ids:
            if total > 1:
                return success_result(f"Perfect! All {total} correct answers selected!")
            return success_result("Correct!")

        correctly = len(selected & correct_ids)
        incorrectly = len(selected - correct_ids)
        missed = total - correctly

        return failure_result(
            f"Not quite right. {correctly}/{total} correct answers selected.",
            score=partial_score(correctly - incorrectly, total),
            errors=[
                ValidationIssue(
                    message=(
                        f"Selected {len(selected)} option(s). {correctly} correct, "
                        f"{incorrectly} incorrect, {missed} missed."
                    )
                )
            ],
        )

    @staticmethod
    def _selected_ids(answer: Any) -> set[str]:
        if isinstance(answer, str):
            return {answer}
        if isinstance(answer, Iterable) and not isinstance(answer, Mapping):
            return {str(option_id) for option_id in answer}
        return set()


class OutputPredictionValidator(IExerciseValidator):
    exercise_type = ExerciseType.OUTPUT_PREDICTION

    # Single-token answers: partial overlap is meaningless
    NO_PARTIAL_CREDIT = (OutputType.ERROR, OutputType.BOOLEAN)

    def validate(
        self, exercise: OutputPredictionExercise, answer: Any
    ) -> ValidationResult:
        prediction = self._prediction(exercise, answer)
        if prediction is None:
            return failure_result(
                "No prediction was submitted.",
                errors=[ValidationIssue(message="Enter the output you expect.")],
            )

        given = normalize_output(prediction)
        expected = normalize_output(exercise.correct_output)
        accepted = {expected, *(normalize_output(a) for a in exercise.allowable_answers)}

        if given in accepted:
            return success_result("Correct prediction!")

        score = 0
        if exercise.output_type not in self.NO_PARTIAL_CREDIT:
            expected_words = Counter(expected.split())
            # Each expected word can be matched once
            matching = Counter(given.split()) & expected_words
            score = partial_score(matching.total(), expected_words.total())

        return failure_result(
            f'Not quite. Your answer: "{prediction}"',
            score=score,
            errors=[
                ValidationIssue(
                    message="The prediction does not match the program output.",
                    hint=exercise.hints[0] if exercise.hints else None,
                )
            ],
        )

    @staticmethod
    def _prediction(exercise: OutputPredictionExercise, answer: Any) -> str | None:
        if isinstance(answer, OutputPredictionAnswer):
            return answer.predicted_output
        if isinstance(answer, str):
            return answer
        if isinstance(answer, Mapping) and isinstance(
            answer.get("predicted_output"), str
        ):
            return answer["predicted_output"]
        # Index into the offered options when answering in multiple-choice format
        if isinstance(answer, int) and not isinstance(answer, bool):
            options = exercise.multiple_choice_options
            if 0 <= answer < len(options):
                return options[answer]
        return None


# --- Registry (OCP) ---
class ValidatorRegistry:
    _validators: dict[ExerciseType, IExerciseValidator] = {}

    @classmethod
    def register(cls, validator: IExerciseValidator) -> None:
        cls._validators[validator.exercise_type] = validator

    @classmethod
    def get(cls, exercise_type: str) -> IExerciseValidator:
        return cls._validators[ExerciseType(exercise_type)]

    @classmethod
    def missing_types(cls) -> list[ExerciseType]:
        return [t for t in ExerciseType if t not in cls._validators]


ValidatorRegistry.register(CodeCompletionValidator())
ValidatorRegistry.register(BugFixValidator())
ValidatorRegistry.register(MultipleChoiceValidator())
ValidatorRegistry.register(OutputPredictionValidator())

if ValidatorRegistry.missing_types():
    raise RuntimeError(
        f"No validator registered for: {ValidatorRegistry.missing_types()}"
    )


class ExerciseGrader:
    """
    Entry point for grading. Never raises: content problems become a safe
    all-incorrect result so the caller can keep going.
    """

    def __init__(self) -> None:
        self.telemetry = Telemetry("ExerciseGrader")

    @measure_time("validate")
    def validate(self, exercise: Exercise | Mapping[str, Any], answer: Any) -> ValidationResult:
        exercise_id = self._exercise_id(exercise)
        try:
            parsed = self._parse(exercise)
            result = ValidatorRegistry.get(parsed.type).validate(parsed, answer)
        except (ValueError, KeyError) as e:
            self.telemetry.log_error(
                "Malformed exercise definition", e, exercise_id=exercise_id
            )
            self.telemetry.record_outcome(self._type_label(exercise), "malformed")
            return malformed_result()
        except Exception as e:
            self.telemetry.log_error("Grading failed", e, exercise_id=exercise_id)
            self.telemetry.record_outcome(self._type_label(exercise), "malformed")
            return malformed_result()

        self.telemetry.record_outcome(
            parsed.type, "correct" if result.is_correct else "incorrect"
        )
        return result

    @staticmethod
    def _parse(exercise: Exercise | Mapping[str, Any]) -> Exercise:
        if isinstance(exercise, Mapping):
            return EXERCISE_ADAPTER.validate_python(exercise)
        return exercise

    @staticmethod
    def _exercise_id(exercise: Any) -> str | None:
        if isinstance(exercise, Mapping):
            return exercise.get("id")
        return getattr(exercise, "id", None)

    @staticmethod
    def _type_label(exercise: Any) -> str:
        if isinstance(exercise, Mapping):
            return str(exercise.get("type", "unknown"))
        return str(getattr(exercise, "type", "unknown"))


_default_grader = ExerciseGrader()


def validate(exercise: Exercise | Mapping[str, Any], answer: Any) -> ValidationResult:
    """Grades `answer` against `exercise` using the shared grader."""
    return _default_grader.validate(exercise, answer)
