from datetime import date
from unittest.mock import Mock

import pytest

from src.practice.adapters.db_manager import DatabaseManager
from src.practice.adapters.sqlite_repository import SQLiteProgressRepository
from src.practice.application.ledger import ProgressLedger
from src.practice.domain.models import (
    Blank,
    BugFixExercise,
    BugInfo,
    Challenge,
    ChallengeType,
    ChoiceOption,
    CodeCompletionExercise,
    MultipleChoiceExercise,
    OutputPredictionExercise,
    OutputType,
)
from src.practice.domain.ports import IProgressRepository
from src.practice.domain.rotation import ChallengeRotator


@pytest.fixture
def sample_user_id():
    return "test_user"


# --- Exercises ---


@pytest.fixture
def code_completion_exercise():
    return CodeCompletionExercise(
        id="cc-1",
        title="Declare Variables",
        base_xp=100,
        perfect_score_xp=25,
        hints=["Use let to declare a variable."],
        explanation="Variables are declared with let.",
        code_template="{blank:b1} x: {blank:b2} = 1;",
        blanks=[
            Blank(id="b1", correct_answer="let"),
            Blank(id="b2", correct_answer="u64", acceptable_answers=["u8"], hint="A number type."),
        ],
    )


@pytest.fixture
def bug_fix_exercise():
    return BugFixExercise(
        id="bf-1",
        title="Fix the Struct",
        base_xp=60,
        hints=["Look at the abilities."],
        buggy_code="struct A has copy drop {\n    x: u64\n    y: u64\n}",
        correct_code="struct A has copy, drop {\n    x: u64,\n    y: u64\n}",
        bugs=[
            BugInfo(line_number=1, description="Abilities need a comma."),
            BugInfo(line_number=2, description="Fields need a trailing comma."),
        ],
    )


@pytest.fixture
def multiple_choice_exercise():
    return MultipleChoiceExercise(
        id="mc-1",
        title="Abilities",
        base_xp=30,
        question="Which abilities allow a value to be discarded or copied?",
        allow_multiple_answers=True,
        options=[
            ChoiceOption(id="A", text="drop", is_correct=True),
            ChoiceOption(id="B", text="key"),
            ChoiceOption(id="C", text="copy", is_correct=True),
            ChoiceOption(id="D", text="store"),
        ],
    )


@pytest.fixture
def output_prediction_exercise():
    return OutputPredictionExercise(
        id="op-1",
        title="Function Call Result",
        base_xp=35,
        hints=["6 * 7 = ?"],
        code="fun test(): u64 { 6 * 7 }",
        correct_output="42",
        output_type=OutputType.VALUE,
        multiple_choice_options=["13", "42", "67"],
    )


# --- Challenges ---


def make_challenge(challenge_id: str, **overrides) -> Challenge:
    fields = dict(
        id=challenge_id,
        date=date(2025, 1, 1),
        type=ChallengeType.CODE_COMPLETION,
        title=f"Challenge {challenge_id}",
        solution="public fun f(): u64 { 1 }",
        base_xp=50,
        time_bonus=25,
        no_hint_bonus=25,
    )
    fields.update(overrides)
    return Challenge(**fields)


@pytest.fixture
def rotation_table():
    return [make_challenge(f"challenge-00{i}") for i in range(1, 5)]


@pytest.fixture
def rotator(rotation_table):
    return ChallengeRotator(rotation_table)


# --- Persistence ---


@pytest.fixture
def mock_repo():
    repo = Mock(spec=IProgressRepository)
    repo.get_streak.return_value = None
    repo.load_attempts.return_value = []
    return repo


@pytest.fixture
def ledger(mock_repo):
    return ProgressLedger(mock_repo)


@pytest.fixture
def db_manager():
    db = DatabaseManager(":memory:")
    yield db
    db.close()


@pytest.fixture
def in_memory_repo(db_manager):
    """Returns a clean, empty in-memory repository."""
    return SQLiteProgressRepository(db_manager)


@pytest.fixture
def challenge_factory():
    return make_challenge
