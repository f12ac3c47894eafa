import pytest

from flashdeck.errors import InvalidInputError
from flashdeck.models import ProgressSnapshot, Quiz, QuizOption, QuizQuestion, QuizStatistics
from flashdeck.validators import validate_card_fields, validate_quiz


def _question(options, card_id="c1", correct_answer="Paris"):
    return QuizQuestion(
        card_id=card_id,
        question="Capital of France?",
        options=[QuizOption(label=label, text=text, is_correct=ok) for label, text, ok in options],
        correct_answer=correct_answer,
        difficulty=3,
        progress=ProgressSnapshot(repetitions=0, ease_factor=2.5, interval=1),
    )


def _quiz(*questions):
    return Quiz(
        deck_id="d1",
        deck_name="Capitals",
        total_questions=len(questions),
        questions=list(questions),
        statistics=QuizStatistics(total_cards=len(questions), learned_cards=0, due_for_review=0),
    )


def test_valid_card_passes():
    validate_card_fields("What is 2 + 2?", "4", ["math"], 2)


@pytest.mark.parametrize(
    "question, answer, tags, difficulty",
    [
        ("", "4", [], 3),
        ("Q", "   ", [], 3),
        ("Q", "A", [], 0),
        ("Q", "A", [], 6),
        ("Q", "A", [" "], 3),
        ("Q", "A", [f"t{i}" for i in range(11)], 3),
        ("Q" * 2001, "A", [], 3),
    ],
)
def test_invalid_cards_are_rejected(question, answer, tags, difficulty):
    with pytest.raises(InvalidInputError):
        validate_card_fields(question, answer, tags, difficulty)


def test_generated_cards_reject_placeholder_text():
    validate_card_fields("TODO: write question", "A")
    with pytest.raises(InvalidInputError):
        validate_card_fields("TODO: write question", "A", generated=True)
    with pytest.raises(InvalidInputError):
        validate_card_fields("Q", "Lorem ipsum dolor", generated=True)


def test_valid_quiz_passes():
    quiz = _quiz(_question([("A", "Lyon", False), ("B", "Paris", True)]))
    validate_quiz(quiz, ["c1"])


@pytest.mark.parametrize(
    "options",
    [
        [("A", "Lyon", False), ("B", "Paris", False)],
        [("A", "Paris", True), ("B", "Lyon", True)],
        [("A", "Paris", True), ("B", "paris ", False)],
        [("A", "Lyon", False), ("C", "Paris", True)],
        [("A", "Lyon", True), ("B", "Paris", False)],
        [],
    ],
)
def test_malformed_questions_are_rejected(options):
    with pytest.raises(InvalidInputError):
        validate_quiz(_quiz(_question(options)), ["c1"])


def test_quiz_must_cover_every_card():
    quiz = _quiz(_question([("A", "Paris", True)]))
    with pytest.raises(InvalidInputError):
        validate_quiz(quiz, ["c1", "c2"])
