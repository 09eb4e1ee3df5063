from src.config import EngineConfig
from src.practice.domain.models import (
    BugFixExercise,
    CodeCompletionExercise,
    Exercise,
    ExerciseFeedback,
    FeedbackType,
    MultipleChoiceExercise,
    OutputPredictionExercise,
    ValidationResult,
)
from src.practice.domain.scoring import round_half_up

_MESSAGES: dict[FeedbackType, tuple[str, str | None]] = {
    FeedbackType.SUCCESS: ("Excellent work! Perfect answer.", None),
    FeedbackType.PARTIAL: (
        "Good progress! You're almost there.",
        "Review the highlighted errors and try again.",
    ),
    FeedbackType.INCORRECT: (
        "Not quite right. Try again!",
        "Review the concepts and use a hint if needed.",
    ),
}


class FeedbackComposer:
    """
    Pure domain logic turning a ValidationResult into learner-facing feedback.
    Output depends only on the arguments.
    """

    @staticmethod
    def classify(result: ValidationResult) -> FeedbackType:
        if result.is_correct and result.score == EngineConfig.PERFECT_SCORE:
            return FeedbackType.SUCCESS
        if result.score >= EngineConfig.PARTIAL_THRESHOLD:
            return FeedbackType.PARTIAL
        return FeedbackType.INCORRECT

    @staticmethod
    def earned_xp(
        feedback_type: FeedbackType,
        score: int,
        hints_used: int,
        base_xp: int,
        perfect_score_xp: int | None = None,
    ) -> int:
        """
        XP formula: base XP scaled by score, plus the perfect-score bonus for
        a fully correct answer given without hints.

        Example:
            >>> FeedbackComposer.earned_xp(FeedbackType.SUCCESS, 100, 0, 100, 25)
            125
        """
        xp = round_half_up(base_xp * score / 100)
        if feedback_type == FeedbackType.SUCCESS and hints_used == 0:
            xp += perfect_score_xp or 0
        return max(0, xp)

    @classmethod
    def compose(
        cls,
        result: ValidationResult,
        hints_used: int,
        base_xp: int,
        perfect_score_xp: int | None = None,
        correct_answer: str | None = None,
        explanation: str | None = None,
    ) -> ExerciseFeedback:
        feedback_type = cls.classify(result)
        message, details = _MESSAGES[feedback_type]
        if feedback_type == FeedbackType.SUCCESS:
            details = explanation

        # Progressive disclosure: the answer is withheld until enough hints
        reveal = (
            feedback_type == FeedbackType.INCORRECT
            and hints_used >= EngineConfig.REVEAL_ANSWER_AFTER_HINTS
        )

        return ExerciseFeedback(
            type=feedback_type,
            message=message,
            details=details,
            earned_xp=cls.earned_xp(
                feedback_type, result.score, hints_used, base_xp, perfect_score_xp
            ),
            show_hint=feedback_type != FeedbackType.SUCCESS,
            correct_answer=correct_answer if reveal else None,
        )

    @classmethod
    def compose_for(
        cls, exercise: Exercise, result: ValidationResult, hints_used: int
    ) -> ExerciseFeedback:
        return cls.compose(
            result,
            hints_used,
            base_xp=exercise.base_xp,
            perfect_score_xp=exercise.perfect_score_xp,
            correct_answer=cls.reveal_answer(exercise),
            explanation=exercise.explanation,
        )

    @staticmethod
    def reveal_answer(exercise: Exercise) -> str:
        if isinstance(exercise, CodeCompletionExercise):
            return ", ".join(f"{b.id}: {b.correct_answer}" for b in exercise.blanks)
        if isinstance(exercise, BugFixExercise):
            return exercise.correct_code
        if isinstance(exercise, MultipleChoiceExercise):
            return ", ".join(opt.text for opt in exercise.options if opt.is_correct)
        if isinstance(exercise, OutputPredictionExercise):
            return exercise.correct_output
        raise TypeError(f"Unsupported exercise: {type(exercise).__name__}")
