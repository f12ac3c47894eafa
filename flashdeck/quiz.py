"""Multiple-choice quiz composition."""
from __future__ import annotations

import random
from datetime import datetime
from string import ascii_uppercase
from typing import List, Mapping, Optional, Tuple, TypeVar

from .distractors import DeckDistractorSource, DistractorSource, normalize_answer
from .domain import Card, Deck, Default, ReviewLookup, ReviewState
from .errors import EmptyDeckError
from .metrics import METRICS
from .models import ProgressSnapshot, Quiz, QuizOption, QuizQuestion, QuizStatistics
from .validators import validate_quiz


DISTRACTORS_PER_QUESTION = 3

T = TypeVar("T")


def fisher_yates_shuffle(items: List[T], rng: random.Random) -> List[T]:
    """Return a uniformly shuffled copy of ``items``."""

    shuffled = items[:]
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def label_options(options: List[Tuple[str, bool]]) -> List[QuizOption]:
    return [
        QuizOption(label=ascii_uppercase[index], text=text, is_correct=is_correct)
        for index, (text, is_correct) in enumerate(options)
    ]


def quiz_statistics(states: List[ReviewState], now: datetime) -> QuizStatistics:
    return QuizStatistics(
        total_cards=len(states),
        learned_cards=sum(1 for state in states if state.is_mastered),
        due_for_review=sum(1 for state in states if state.is_due(now)),
    )


class QuizComposer:
    """Builds a quiz with one question per card of a deck."""

    def __init__(
        self,
        distractor_source: Optional[DistractorSource] = None,
        rng: Optional[random.Random] = None,
        distractor_count: int = DISTRACTORS_PER_QUESTION,
    ) -> None:
        self._distractor_source = distractor_source
        self._rng = rng or random.Random()
        self._distractor_count = distractor_count

    def compose(
        self,
        deck: Deck,
        review_states: Mapping[str, ReviewLookup],
        now: Optional[datetime] = None,
    ) -> Quiz:
        if not deck.cards:
            raise EmptyDeckError(f"No flashcards found in deck {deck.id}")

        now = now or datetime.utcnow()
        source = self._distractor_source or DeckDistractorSource(deck.cards, self._rng)

        questions: List[QuizQuestion] = []
        states: List[ReviewState] = []
        for card in deck.cards:
            state = review_states.get(card.id, Default()).resolve(now)
            states.append(state)
            questions.append(self._question_for(card, state, source))

        quiz = Quiz(
            deck_id=deck.id,
            deck_name=deck.name,
            total_questions=len(questions),
            questions=fisher_yates_shuffle(questions, self._rng),
            statistics=quiz_statistics(states, now),
        )
        validate_quiz(quiz, [card.id for card in deck.cards])

        METRICS.record_quiz(quiz.total_questions)
        for question in quiz.questions:
            position = next(index for index, option in enumerate(question.options) if option.is_correct)
            METRICS.record_answer_position(deck.id, position)
        return quiz

    def _question_for(self, card: Card, state: ReviewState, source: DistractorSource) -> QuizQuestion:
        distractors = source.generate(card.question, card.answer, self._distractor_count)

        options: List[Tuple[str, bool]] = [(card.answer, True)]
        taken = {normalize_answer(card.answer)}
        for text in distractors:
            key = normalize_answer(text)
            if not key or key in taken:
                continue
            taken.add(key)
            options.append((text, False))

        return QuizQuestion(
            card_id=card.id,
            question=card.question,
            image_url=card.image_url,
            audio_url=card.audio_url,
            options=label_options(fisher_yates_shuffle(options, self._rng)),
            correct_answer=card.answer,
            difficulty=card.difficulty,
            progress=ProgressSnapshot(
                repetitions=state.repetitions,
                ease_factor=state.ease_factor,
                interval=state.interval,
            ),
        )


__all__ = ["QuizComposer", "fisher_yates_shuffle", "label_options", "quiz_statistics"]
