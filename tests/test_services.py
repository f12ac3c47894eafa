import random
import threading
from datetime import timedelta

import pytest

from flashdeck.domain import Found, ReviewState
from flashdeck.errors import InvalidInputError, NotFoundError, UnauthorizedError
from flashdeck.generation import CardGenerator
from flashdeck.models import (
    AutoGenerateRequest,
    CardCreateRequest,
    CardUpdateRequest,
    DeckCreateRequest,
    SubmitAnswerRequest,
)
from flashdeck.scheduler import IntervalPolicy, SchedulerConfig
from flashdeck.services import StudyConfig, StudyService

from .conftest import NOW, FakeTextGenerator, make_deck


def _answer(card, text=None, time_spent_ms=None):
    return SubmitAnswerRequest(
        card_id=card.id, selected_option=text if text is not None else card.answer, time_spent_ms=time_spent_ms
    )


# --- Decks and cards ---------------------------------------------------------

def test_create_deck_and_add_card(service):
    deck = service.create_deck("alice", DeckCreateRequest(name=" Biology ", category="science"))
    assert deck.name == "Biology"
    assert deck.card_count == 0

    card = service.add_card(
        "alice",
        deck.id,
        CardCreateRequest(question="What is DNA?", answer="Genetic material", tags=["genetics"]),
    )
    assert card.deck_id == deck.id
    assert card.tags == ["genetics"]
    assert not card.ai_generated


def test_only_owner_may_add_cards(service, deck):
    with pytest.raises(UnauthorizedError):
        service.add_card("bob", deck.id, CardCreateRequest(question="Q", answer="A"))


def test_unknown_deck_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.compose_quiz("alice", "missing")


def test_auto_generate_cards_from_model(repository, deck):
    generator = FakeTextGenerator(
        output='[{"question": "Where is Paris?", "answer": "France", "type": "factual", "difficulty": 2},'
        ' {"question": "TODO", "answer": "TBD"}]'
    )
    service = StudyService(repository, card_generator=CardGenerator(generator), clock=lambda: NOW)
    cards = service.auto_generate_cards(
        "alice", deck.id, AutoGenerateRequest(sentences=["Paris is in France."], count=2)
    )

    assert [(card.question, card.answer) for card in cards] == [("Where is Paris?", "France")]
    assert cards[0].ai_generated
    assert cards[0].tags == ["factual"]
    assert len(repository.get_deck(deck.id).cards) == 6


def test_auto_generate_cards_without_model(service, repository, deck):
    cards = service.auto_generate_cards(
        "alice", deck.id, AutoGenerateRequest(sentences=["Paris is in France", ""], count=3)
    )
    assert len(cards) == 3
    assert len(repository.get_deck(deck.id).cards) == 8


# --- Access control ----------------------------------------------------------

def test_private_deck_is_hidden_from_other_users(service, deck):
    with pytest.raises(UnauthorizedError):
        service.compose_quiz("mallory", deck.id)
    with pytest.raises(UnauthorizedError):
        service.submit_answer("mallory", deck.id, _answer(deck.cards[0]))


def test_shared_and_public_decks_can_be_studied(service, repository):
    shared = make_deck(shared_with={"bob"})
    public = make_deck(is_public=True)
    repository.save_deck(shared)
    repository.save_deck(public)

    assert service.compose_quiz("bob", shared.id).total_questions == 5
    assert service.compose_quiz("carol", public.id).total_questions == 5


# --- Answers -----------------------------------------------------------------

def test_correct_answer_updates_progress(service, repository, deck):
    card = deck.cards[0]
    response = service.submit_answer("alice", deck.id, _answer(card, " paris ", time_spent_ms=1200))

    assert response.correct
    assert response.explanation == "Correct! Well done!"
    assert response.progress.quality_score == 5
    assert response.progress.ease_factor == pytest.approx(2.6)
    assert response.progress.repetitions == 1
    assert response.progress.interval == 1
    assert response.progress.accuracy == 100
    assert response.progress.next_review_at == NOW + timedelta(days=1)
    assert response.deck_completion.mastered == 1
    assert response.deck_completion.percentage == 20

    state = repository.load_state("alice", card.id).resolve(NOW)
    assert (state.total_attempts, state.correct_attempts) == (1, 1)
    (record,) = repository.list_attempts("alice")
    assert record.id == response.history_id
    assert record.is_correct


def test_incorrect_answer_resets_progress(service, repository, deck):
    card = deck.cards[0]
    repository.save_state(
        "alice",
        card.id,
        ReviewState(next_review_at=NOW, interval=6, repetitions=3, is_mastered=True, total_attempts=3, correct_attempts=3),
    )
    response = service.submit_answer("alice", deck.id, _answer(card, "Lyon"))

    assert not response.correct
    assert response.explanation == "Incorrect. The correct answer is: Paris"
    assert response.progress.repetitions == 0
    assert response.progress.interval == 1
    assert not response.progress.is_mastered
    assert response.progress.accuracy == 75
    assert repository.list_attempts("alice")[0].status.value == "NEEDS_REVIEW"


def test_answer_for_card_outside_deck_is_rejected(service, repository, deck):
    other = make_deck()
    repository.save_deck(other)
    with pytest.raises(InvalidInputError):
        service.submit_answer("alice", deck.id, _answer(other.cards[0]))


def test_answer_for_unknown_card_is_not_found(service, deck):
    request = SubmitAnswerRequest(card_id="missing", selected_option="Paris")
    with pytest.raises(NotFoundError):
        service.submit_answer("alice", deck.id, request)


def test_review_state_is_kept_per_user(service, repository):
    public = make_deck(is_public=True)
    repository.save_deck(public)
    card = public.cards[0]
    service.submit_answer("alice", public.id, _answer(card))
    service.submit_answer("bob", public.id, _answer(card, "Lyon"))

    assert repository.load_state("alice", card.id).resolve(NOW).is_mastered
    assert not repository.load_state("bob", card.id).resolve(NOW).is_mastered


def test_geometric_interval_policy(repository, deck):
    config = StudyConfig(scheduler=SchedulerConfig(interval_policy=IntervalPolicy.GEOMETRIC))
    service = StudyService(repository, config=config, clock=lambda: NOW)
    card = deck.cards[0]
    intervals = [service.submit_answer("alice", deck.id, _answer(card)).next_review_in_days for _ in range(3)]
    assert intervals == [1, 6, 15]


def test_concurrent_submissions_keep_every_attempt(any_repository):
    deck = make_deck(answers=("Paris",))
    any_repository.save_deck(deck)
    service = StudyService(any_repository, rng=random.Random(0), clock=lambda: NOW)
    card = deck.cards[0]
    submissions = 40

    def submit(index):
        service.submit_answer("alice", deck.id, _answer(card, "Paris" if index % 2 else "Lyon"))

    threads = [threading.Thread(target=submit, args=(index,)) for index in range(submissions)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    lookup = any_repository.load_state("alice", card.id)
    assert isinstance(lookup, Found)
    assert lookup.state.total_attempts == submissions
    assert lookup.state.correct_attempts == submissions // 2
    assert len(any_repository.list_attempts("alice")) == submissions


def test_review_locks_are_dropped_after_submissions(any_repository):
    deck = make_deck(answers=tuple(f"Answer {index}" for index in range(50)))
    any_repository.save_deck(deck)
    service = StudyService(any_repository, rng=random.Random(0), clock=lambda: NOW)

    threads = [
        threading.Thread(target=service.submit_answer, args=("alice", deck.id, _answer(card)))
        for card in deck.cards
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(any_repository.load_states("alice")) == 50
    assert len(any_repository._review_locks) == 0


# --- Card management ---------------------------------------------------------

def test_list_cards_is_owner_only(service, deck):
    cards = service.list_cards("alice", deck.id)
    assert [card.answer for card in cards] == ["Paris", "Berlin", "Madrid", "Rome", "Lisbon"]
    with pytest.raises(UnauthorizedError):
        service.list_cards("bob", deck.id)


def test_update_card_changes_only_sent_fields(service, repository, deck):
    card = deck.cards[0]
    card.image_url = "https://example.org/paris.png"
    repository.update_card(card)

    updated = service.update_card(
        "alice",
        deck.id,
        card.id,
        CardUpdateRequest(question="Capital of France?", answer="  ", tags=["europe"], image_url=None),
    )

    assert updated.question == "Capital of France?"
    assert updated.answer == "Paris"
    assert updated.tags == ["europe"]
    assert updated.image_url is None
    assert updated.difficulty == 3
    stored = repository.get_deck(deck.id).cards[0]
    assert (stored.id, stored.question) == (card.id, "Capital of France?")


def test_update_card_validation_and_access(service, repository, deck):
    card = deck.cards[0]
    with pytest.raises(InvalidInputError):
        service.update_card("alice", deck.id, card.id, CardUpdateRequest(tags=[" "]))
    with pytest.raises(UnauthorizedError):
        service.update_card("bob", deck.id, card.id, CardUpdateRequest(difficulty=5))
    with pytest.raises(NotFoundError):
        service.update_card("alice", deck.id, "missing", CardUpdateRequest(difficulty=5))

    other = make_deck()
    repository.save_deck(other)
    with pytest.raises(InvalidInputError):
        service.update_card("alice", deck.id, other.cards[0].id, CardUpdateRequest(difficulty=5))


def test_update_request_needs_a_field():
    with pytest.raises(ValueError):
        CardUpdateRequest()


def test_delete_card_removes_progress_and_history(any_repository):
    deck = make_deck(answers=("Paris", "Berlin"))
    any_repository.save_deck(deck)
    service = StudyService(any_repository, rng=random.Random(0), clock=lambda: NOW)
    paris, berlin = deck.cards
    service.submit_answer("alice", deck.id, _answer(paris))
    service.submit_answer("alice", deck.id, _answer(berlin))

    service.delete_card("alice", deck.id, paris.id)

    assert [card.id for card in service.list_cards("alice", deck.id)] == [berlin.id]
    assert any_repository.get_card(paris.id) is None
    assert any_repository.load_state("alice", paris.id).resolve(NOW).total_attempts == 0
    assert [record.card_id for record in any_repository.list_attempts("alice")] == [berlin.id]
    with pytest.raises(NotFoundError):
        service.delete_card("alice", deck.id, paris.id)


def test_only_owner_may_delete_cards(service, deck):
    with pytest.raises(UnauthorizedError):
        service.delete_card("bob", deck.id, deck.cards[0].id)


# --- Statistics and analytics -----------------------------------------------

def test_quiz_statistics_track_answers(service, deck):
    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    quiz = service.compose_quiz("alice", deck.id)
    assert quiz.statistics.total_cards == 5
    assert quiz.statistics.learned_cards == 1
    assert quiz.statistics.due_for_review == 4


def test_deck_and_user_stats(service, deck):
    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    service.submit_answer("alice", deck.id, _answer(deck.cards[1], "Lyon"))

    stats = service.deck_stats("alice", deck.id)
    assert (stats.learned_cards, stats.new_cards, stats.total_reviews) == (1, 3, 2)
    assert stats.average_accuracy == 50

    summary = service.user_stats("alice")
    assert summary.daily_streak.count == 1
    assert summary.decks.total == 1
    assert summary.flashcards.total == 5
    assert summary.flashcards.learned == 1
    assert summary.flashcards.in_progress == 1


def test_weekly_progress_always_has_seven_days(service, deck):
    assert len(service.weekly_progress("alice")) == 7
    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    entries = {entry.day: entry for entry in service.weekly_progress("alice")}
    assert entries["Wed"].cards_learned == 1
    assert entries["Wed"].accuracy == 100


def test_learning_history_and_stats(service, deck):
    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    service.submit_answer("alice", deck.id, _answer(deck.cards[1], "Lyon"))

    history = service.learning_history("alice", deck_id=deck.id)
    assert {entry.question for entry in history} == {deck.cards[0].question, deck.cards[1].question}
    assert all(entry.deck_name == "Capitals" for entry in history)
    assert len(service.learning_history("alice", limit=1)) == 1

    stats = service.learning_stats("alice")
    assert (stats.total_attempts, stats.correct_answers, stats.accuracy) == (2, 1, 50)
    assert [recent.id for recent in stats.recent_decks] == [deck.id]


def test_generate_analytics_requires_progress(service):
    with pytest.raises(NotFoundError):
        service.generate_analytics("alice")


def test_generate_analytics_upserts_per_category(service, repository, deck):
    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    service.submit_answer("alice", deck.id, _answer(deck.cards[1], "Lyon"))

    (row,) = service.generate_analytics("alice")
    assert row.category == "general"
    assert row.performance == 50.0
    assert row.weak_areas == ["tag1"]

    service.submit_answer("alice", deck.id, _answer(deck.cards[1]))
    service.generate_analytics("alice")
    stored = service.get_category_analytics("alice", "general")
    assert stored.performance == pytest.approx(66.67)
    assert len(service.list_analytics("alice")) == 1


def test_auto_analytics_skips_idle_users(repository, deck):
    clock = {"now": NOW}
    service = StudyService(repository, clock=lambda: clock["now"])
    assert service.auto_generate_analytics("alice") is None

    service.submit_answer("alice", deck.id, _answer(deck.cards[0]))
    assert service.auto_generate_analytics("alice") is not None

    clock["now"] = NOW + timedelta(days=2)
    assert service.auto_generate_analytics("alice") is None


def test_missing_category_analytics(service):
    with pytest.raises(NotFoundError):
        service.get_category_analytics("alice", "unknown")
