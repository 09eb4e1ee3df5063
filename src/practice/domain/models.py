from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field


# --- Enums ---
class ExerciseType(str, Enum):
    CODE_COMPLETION = "code_completion"
    BUG_FIX = "bug_fix"
    MULTIPLE_CHOICE = "multiple_choice"
    OUTPUT_PREDICTION = "output_prediction"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class BugType(str, Enum):
    SYNTAX = "syntax"
    LOGIC = "logic"
    TYPE = "type"
    RUNTIME = "runtime"


class OutputType(str, Enum):
    VALUE = "value"
    TYPE = "type"
    ERROR = "error"
    BOOLEAN = "boolean"


class AnswerFormat(str, Enum):
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FeedbackType(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    INCORRECT = "incorrect"


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MASTERED = "mastered"


class ChallengeType(str, Enum):
    CODE_COMPLETION = "code_completion"
    BUG_FIX = "bug_fix"
    OUTPUT_PREDICTION = "output_prediction"
    WRITE_FUNCTION = "write_function"


class ChallengeDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# --- Authored Content (read-only) ---
class ContentError(ValueError):
    """Authored content (exercise, rotation table) cannot be used as-is."""


class _Content(BaseModel):
    model_config = ConfigDict(frozen=True)


class Blank(_Content):
    id: str
    placeholder: str = "___"
    correct_answer: str
    acceptable_answers: list[str] = []
    hint: str | None = None


class BugInfo(_Content):
    line_number: int = Field(ge=1)
    bug_type: BugType = BugType.LOGIC
    description: str
    hint: str | None = None


class ChoiceOption(_Content):
    id: str
    text: str
    is_correct: bool = False
    explanation: str | None = None


class BaseExercise(_Content):
    id: str
    difficulty: Difficulty = Difficulty.BEGINNER
    topic: str = "general"
    title: str = ""
    description: str = ""
    lesson_id: str | None = None

    # Rewards
    base_xp: int = Field(ge=0)
    perfect_score_xp: int | None = Field(default=None, ge=0)

    # Help system
    hints: list[str] = []
    explanation: str | None = None
    estimated_time: int = 5  # minutes


class CodeCompletionExercise(BaseExercise):
    type: Literal["code_completion"] = "code_completion"
    code_template: str = ""
    blanks: list[Blank]
    strict_mode: bool = False
    case_sensitive: bool = False


class BugFixExercise(BaseExercise):
    type: Literal["bug_fix"] = "bug_fix"
    buggy_code: str
    correct_code: str
    bugs: list[BugInfo]
    allow_partial_credit: bool = True


class MultipleChoiceExercise(BaseExercise):
    type: Literal["multiple_choice"] = "multiple_choice"
    question: str
    code_snippet: str | None = None
    options: list[ChoiceOption]
    allow_multiple_answers: bool = False
    shuffle_options: bool = False

    @property
    def correct_option_ids(self) -> set[str]:
        return {opt.id for opt in self.options if opt.is_correct}


class OutputPredictionExercise(BaseExercise):
    type: Literal["output_prediction"] = "output_prediction"
    code: str
    correct_output: str
    output_type: OutputType = OutputType.VALUE
    answer_format: AnswerFormat = AnswerFormat.TEXT
    multiple_choice_options: list[str] = []
    allowable_answers: list[str] = []


Exercise = Annotated[
    CodeCompletionExercise
    | BugFixExercise
    | MultipleChoiceExercise
    | OutputPredictionExercise,
    Field(discriminator="type"),
]

EXERCISE_ADAPTER: TypeAdapter[Exercise] = TypeAdapter(Exercise)


# --- Answers (learner submissions) ---
class BugFixAnswer(BaseModel):
    fixed_code: str
    fixed_lines: list[int] | None = None


class OutputPredictionAnswer(BaseModel):
    predicted_output: str
    reasoning: str | None = None


CodeCompletionAnswer = dict[str, str]
MultipleChoiceAnswer = list[str] | set[str] | frozenset[str] | tuple[str, ...]

ExerciseAnswer = (
    CodeCompletionAnswer | BugFixAnswer | MultipleChoiceAnswer | OutputPredictionAnswer | str
)


# --- Grading Results ---
class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: str | None = None
    message: str
    severity: Severity = Severity.ERROR
    hint: str | None = None


class PartialCredit(BaseModel):
    model_config = ConfigDict(frozen=True)

    earned: int
    possible: int
    breakdown: list[str] = []


class ValidationResult(BaseModel):
    """Outcome of grading one submission. Never mutated once created."""

    model_config = ConfigDict(frozen=True)

    is_correct: bool
    score: int = Field(ge=0, le=100)
    feedback: str
    errors: list[ValidationIssue] | None = None
    partial_credit: PartialCredit | None = None


class ExerciseFeedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FeedbackType
    message: str
    details: str | None = None
    earned_xp: int = Field(ge=0)
    show_hint: bool | None = None
    correct_answer: str | None = None


# --- Progress Ledger Records ---
class ExerciseAttempt(BaseModel):
    attempt_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    exercise_id: str
    answer: Any = None
    result: ValidationResult
    hints_used: int = Field(default=0, ge=0)
    time_spent_seconds: int = Field(default=0, ge=0)
    earned_xp: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ExerciseProgress(BaseModel):
    """
    Aggregate for one (user, exercise) pair, folded from its attempts.
    """

    user_id: str
    exercise_id: str
    attempts_count: int = 0
    successful_attempts: int = 0
    best_score: int = 0
    average_score: int = 0
    total_xp_earned: int = 0
    completed: bool = False
    completed_at: datetime | None = None
    mastered_at: datetime | None = None
    last_attempt_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> ProgressStatus:
        if self.mastered_at is not None:
            return ProgressStatus.MASTERED
        if self.completed:
            return ProgressStatus.COMPLETED
        if self.attempts_count > 0:
            return ProgressStatus.IN_PROGRESS
        return ProgressStatus.NOT_STARTED


class LearnerStatistics(BaseModel):
    user_id: str
    exercises_count: int = 0
    completed_count: int = 0
    mastered_count: int = 0
    in_progress_count: int = 0
    total_attempts: int = 0
    total_xp: int = 0
    average_score: int = 0
    completion_rate: int = 0
    level: int = 1


class Achievement(BaseModel):
    name: str
    description: str
    icon: str
    earned: bool


class ExerciseResult(BaseModel):
    validation: ValidationResult
    feedback: ExerciseFeedback
    progress: ExerciseProgress


# --- Daily Challenges ---
class Challenge(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: date
    type: ChallengeType
    difficulty: ChallengeDifficulty = ChallengeDifficulty.EASY
    topic: str = "general"
    title: str
    description: str = ""

    starter_code: str | None = None
    buggy_code: str | None = None
    prediction_code: str | None = None
    solution: str

    multiple_choice_options: list[str] | None = None
    correct_option_index: int | None = None

    hints: list[str] = []

    base_xp: int = Field(ge=0)
    time_bonus: int = Field(default=0, ge=0)
    no_hint_bonus: int = Field(default=0, ge=0)

    estimated_time: int = 3
    related_lesson: str | None = None


class ChallengeStreak(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_completed_date: date | None = None
    total_challenges_completed: int = Field(default=0, ge=0)


class ChallengeReward(BaseModel):
    base_xp: int = 0
    time_bonus: int = 0
    no_hint_bonus: int = 0
    streak_bonus: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_xp(self) -> int:
        return self.base_xp + self.time_bonus + self.no_hint_bonus + self.streak_bonus


class ChallengeCompletion(BaseModel):
    streak: ChallengeStreak
    reward: ChallengeReward
    already_completed: bool = False
