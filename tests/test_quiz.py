import random
from collections import Counter
from datetime import timedelta

import pytest

from flashdeck.distractors import DistractorSource, GenerativeDistractorSource
from flashdeck.domain import Deck, Found, ReviewState
from flashdeck.errors import EmptyDeckError
from flashdeck.metrics import METRICS
from flashdeck.quiz import QuizComposer, fisher_yates_shuffle

from .conftest import NOW, FakeTextGenerator, make_deck


class FixedSource(DistractorSource):
    def __init__(self, options):
        self.options = options

    def generate(self, question, correct_answer, count):
        return list(self.options)


def test_quiz_has_one_question_per_card(rng):
    deck = make_deck()
    quiz = QuizComposer(rng=rng).compose(deck, {}, now=NOW)

    assert quiz.deck_id == deck.id
    assert quiz.deck_name == "Capitals"
    assert quiz.total_questions == len(deck.cards) == len(quiz.questions)
    assert sorted(q.card_id for q in quiz.questions) == sorted(card.id for card in deck.cards)


def test_each_question_has_exactly_one_correct_option(rng):
    deck = make_deck()
    quiz = QuizComposer(rng=rng).compose(deck, {}, now=NOW)

    for question in quiz.questions:
        assert [option.label for option in question.options] == ["A", "B", "C", "D"]
        correct = [option for option in question.options if option.is_correct]
        assert len(correct) == 1
        assert correct[0].text == question.correct_answer
        texts = [option.text for option in question.options]
        assert len(set(texts)) == len(texts)


def test_correct_option_positions_are_recorded(rng):
    deck = make_deck()
    QuizComposer(rng=rng).compose(deck, {}, now=NOW)
    positions = METRICS.answer_positions[deck.id]
    assert sum(positions.values()) == len(deck.cards)
    assert set(positions) <= {0, 1, 2, 3}


def test_empty_deck_is_rejected(rng):
    with pytest.raises(EmptyDeckError):
        QuizComposer(rng=rng).compose(Deck(owner_id="alice", name="Empty"), {}, now=NOW)


def test_single_card_deck_uses_generic_distractors(rng):
    deck = make_deck(answers=("Paris",))
    quiz = QuizComposer(rng=rng).compose(deck, {}, now=NOW)
    texts = {option.text for option in quiz.questions[0].options}
    assert texts == {"Paris", "None of the above", "Not applicable", "Cannot be determined"}


def test_duplicate_distractors_are_dropped(rng):
    deck = make_deck(answers=("Paris",))
    quiz = QuizComposer(FixedSource(["Lyon", "LYON", "paris"]), rng=rng).compose(deck, {}, now=NOW)
    options = quiz.questions[0].options
    assert sorted(option.text for option in options) == ["Lyon", "Paris"]
    assert [option.label for option in options] == ["A", "B"]


def test_generative_source_failure_still_yields_quiz(rng):
    deck = make_deck(answers=("Paris", "Berlin"))
    source = GenerativeDistractorSource(FakeTextGenerator())
    quiz = QuizComposer(source, rng=rng).compose(deck, {}, now=NOW)
    for question in quiz.questions:
        texts = {option.text for option in question.options}
        assert texts == {question.correct_answer, "Option 1", "Option 2", "Option 3"}


def test_statistics_reflect_review_states(rng):
    deck = make_deck(answers=("Paris", "Berlin", "Madrid"))
    paris, berlin, _ = deck.cards
    lookups = {
        paris.id: Found(ReviewState(next_review_at=NOW + timedelta(days=1), is_mastered=True)),
        berlin.id: Found(ReviewState(next_review_at=NOW - timedelta(days=1), is_mastered=True)),
    }
    quiz = QuizComposer(rng=rng).compose(deck, lookups, now=NOW)

    assert quiz.statistics.total_cards == 3
    assert quiz.statistics.learned_cards == 2
    # berlin is overdue and madrid has never been studied
    assert quiz.statistics.due_for_review == 2


def test_question_progress_comes_from_review_state(rng):
    deck = make_deck(answers=("Paris",))
    state = ReviewState(next_review_at=NOW, ease_factor=2.2, interval=6, repetitions=2)
    quiz = QuizComposer(rng=rng).compose(deck, {deck.cards[0].id: Found(state)}, now=NOW)
    progress = quiz.questions[0].progress
    assert (progress.repetitions, progress.ease_factor, progress.interval) == (2, 2.2, 6)


def test_seeded_composition_is_reproducible():
    deck = make_deck()
    first = QuizComposer(rng=random.Random(5)).compose(deck, {}, now=NOW)
    second = QuizComposer(rng=random.Random(5)).compose(deck, {}, now=NOW)
    assert first == second


def test_fisher_yates_returns_a_permutation(rng):
    items = list(range(10))
    shuffled = fisher_yates_shuffle(items, rng)
    assert sorted(shuffled) == items
    assert items == list(range(10))


def test_correct_answer_position_is_spread_out():
    deck = make_deck()
    composer = QuizComposer(rng=random.Random(1))
    positions = Counter()
    for _ in range(100):
        for question in composer.compose(deck, {}, now=NOW).questions:
            positions[next(i for i, option in enumerate(question.options) if option.is_correct)] += 1
    assert set(positions) == {0, 1, 2, 3}
    assert max(positions.values()) < 250
