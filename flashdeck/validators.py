"""Validation utilities for cards and composed quizzes."""
from __future__ import annotations

import re
from string import ascii_uppercase
from typing import Iterable, Optional, Sequence

from .distractors import normalize_answer
from .errors import InvalidInputError
from .models import Quiz, QuizQuestion


FORBIDDEN_PATTERNS = (
    re.compile(r"\bTODO\b", re.IGNORECASE),
    re.compile(r"\bTBD\b", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\?{3,}"),
)
MAX_TAGS = 10
MAX_TEXT_LENGTH = 2000


def _assert_forbidden_patterns(text: str, context: str) -> None:
    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(text):
            raise InvalidInputError(f"Forbidden pattern detected in {context}: '{pattern.pattern}'")


def _assert_text(text: Optional[str], context: str) -> None:
    if not text or not text.strip():
        raise InvalidInputError(f"Card {context} must be non-empty")
    if len(text) > MAX_TEXT_LENGTH:
        raise InvalidInputError(f"Card {context} exceeds {MAX_TEXT_LENGTH} characters")


def validate_card_fields(
    question: Optional[str],
    answer: Optional[str],
    tags: Sequence[str] = (),
    difficulty: int = 3,
    generated: bool = False,
) -> None:
    """Reject cards with missing text, bad tags or an out-of-range difficulty."""

    _assert_text(question, "question")
    _assert_text(answer, "answer")
    if not 1 <= difficulty <= 5:
        raise InvalidInputError("Card difficulty must be between 1 and 5")
    if len(tags) > MAX_TAGS:
        raise InvalidInputError(f"Cards may carry at most {MAX_TAGS} tags")
    for tag in tags:
        if not tag.strip():
            raise InvalidInputError("Card tags must be non-empty strings")
    if generated:
        _assert_forbidden_patterns(question, "generated question")
        _assert_forbidden_patterns(answer, "generated answer")


def _validate_question(question: QuizQuestion) -> None:
    if not question.options:
        raise InvalidInputError(f"Question for card {question.card_id} has no options")

    labels = [option.label for option in question.options]
    if labels != list(ascii_uppercase[: len(labels)]):
        raise InvalidInputError(f"Options for card {question.card_id} are not labelled sequentially")

    texts = [normalize_answer(option.text) for option in question.options]
    if len(set(texts)) != len(texts):
        raise InvalidInputError(f"Question for card {question.card_id} has duplicate options")

    correct = [option for option in question.options if option.is_correct]
    if len(correct) != 1:
        raise InvalidInputError(
            f"Question for card {question.card_id} must contain exactly one correct option"
        )
    if normalize_answer(correct[0].text) != normalize_answer(question.correct_answer):
        raise InvalidInputError(f"Correct option for card {question.card_id} does not match its answer")


def validate_quiz(quiz: Quiz, card_ids: Iterable[str]) -> None:
    """Validate that every card became exactly one well formed question."""

    expected = sorted(card_ids)
    seen = sorted(question.card_id for question in quiz.questions)
    if seen != expected:
        raise InvalidInputError("Quiz questions do not match the deck's cards")
    if quiz.total_questions != len(quiz.questions):
        raise InvalidInputError("Quiz question count is inconsistent")
    for question in quiz.questions:
        _validate_question(question)


__all__ = ["validate_card_fields", "validate_quiz"]
