"""Study workflows: quiz composition, answer grading and analytics."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .distractors import DistractorSource, normalize_answer
from .domain import AttemptRecord, Card, CategoryAnalytics, Deck, Found
from .errors import InvalidInputError, NotFoundError, UnauthorizedError
from .generation import CardGenerator
from .metrics import METRICS
from .models import (
    AnswerProgress,
    AutoGenerateRequest,
    CardCreateRequest,
    CardResponse,
    CardUpdateRequest,
    CategoryAnalyticsResponse,
    DeckCreateRequest,
    DeckResponse,
    DeckStats,
    HistoryEntry,
    LearningStats,
    Quiz,
    SubmitAnswerRequest,
    SubmitAnswerResponse,
    UserStats,
    WeeklyProgressEntry,
)
from .progress import (
    category_analytics,
    deck_completion,
    deck_stats,
    learning_stats,
    user_stats,
    weekly_breakdown,
)
from .quiz import DISTRACTORS_PER_QUESTION, QuizComposer
from .repositories import StudyRepository
from .scheduler import ReviewScheduler, SchedulerConfig, quality_score
from .validators import validate_card_fields


logger = logging.getLogger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)
ANALYTICS_LIST_LIMIT = 4


@dataclass
class StudyConfig:
    """Tunable configuration for the study workflows."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    distractor_count: int = DISTRACTORS_PER_QUESTION


def _card_response(card: Card) -> CardResponse:
    return CardResponse(**card.to_dict())


def _deck_response(deck: Deck) -> DeckResponse:
    return DeckResponse(
        id=deck.id,
        owner_id=deck.owner_id,
        name=deck.name,
        category=deck.category,
        is_public=deck.is_public,
        card_count=len(deck.cards),
    )


def _analytics_response(row: CategoryAnalytics) -> CategoryAnalyticsResponse:
    return CategoryAnalyticsResponse(
        category=row.category,
        performance=row.performance,
        weak_areas=list(row.weak_areas),
        recommendations=list(row.recommendations),
        updated_at=row.updated_at,
    )


class StudyService:
    """Facade over the scheduling, quiz and progress components."""

    def __init__(
        self,
        repository: StudyRepository,
        config: Optional[StudyConfig] = None,
        distractor_source: Optional[DistractorSource] = None,
        card_generator: Optional[CardGenerator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._repository = repository
        self._config = config or StudyConfig()
        self._distractor_source = distractor_source
        self._rng = rng or random.Random()
        self._card_generator = card_generator or CardGenerator(rng=self._rng)
        self._scheduler = ReviewScheduler(self._config.scheduler)
        self._clock = clock

    # region Access helpers
    def _get_deck(self, deck_id: str) -> Deck:
        deck = self._repository.get_deck(deck_id)
        if deck is None:
            raise NotFoundError(f"Deck {deck_id} not found")
        return deck

    def _get_study_deck(self, user_id: str, deck_id: str) -> Deck:
        deck = self._get_deck(deck_id)
        if not deck.can_study(user_id):
            raise UnauthorizedError(f"User {user_id} cannot study deck {deck_id}")
        return deck

    def _get_owned_deck(self, user_id: str, deck_id: str) -> Deck:
        deck = self._get_deck(deck_id)
        if deck.owner_id != user_id:
            raise UnauthorizedError(f"User {user_id} does not own deck {deck_id}")
        return deck

    def _get_deck_card(self, deck: Deck, card_id: str) -> Card:
        card = deck.find_card(card_id)
        if card is not None:
            return card
        if self._repository.get_card(card_id) is None:
            raise NotFoundError(f"Flashcard {card_id} not found")
        raise InvalidInputError(f"Flashcard {card_id} does not belong to deck {deck.id}")

    # endregion

    # region Decks and cards
    def create_deck(self, user_id: str, request: DeckCreateRequest) -> DeckResponse:
        deck = Deck(
            owner_id=user_id,
            name=request.name,
            category=request.category,
            is_public=request.is_public,
            shared_with=set(request.shared_with),
        )
        self._repository.save_deck(deck)
        return _deck_response(deck)

    def add_card(self, user_id: str, deck_id: str, request: CardCreateRequest) -> CardResponse:
        deck = self._get_owned_deck(user_id, deck_id)
        validate_card_fields(request.question, request.answer, request.tags, request.difficulty)
        card = Card(
            deck_id=deck.id,
            question=request.question.strip(),
            answer=request.answer.strip(),
            image_url=request.image_url,
            audio_url=request.audio_url,
            tags={tag.strip() for tag in request.tags},
            difficulty=request.difficulty,
        )
        self._repository.add_cards(deck.id, [card])
        return _card_response(card)

    def list_cards(self, user_id: str, deck_id: str) -> List[CardResponse]:
        deck = self._get_owned_deck(user_id, deck_id)
        return [_card_response(card) for card in deck.cards]

    def update_card(
        self, user_id: str, deck_id: str, card_id: str, request: CardUpdateRequest
    ) -> CardResponse:
        """Apply the fields present in ``request``; blank question or answer text is ignored."""

        deck = self._get_owned_deck(user_id, deck_id)
        card = self._get_deck_card(deck, card_id)
        changes = {}
        if request.question and request.question.strip():
            changes["question"] = request.question.strip()
        if request.answer and request.answer.strip():
            changes["answer"] = request.answer.strip()
        for name in ("image_url", "audio_url"):
            if name in request.model_fields_set:
                changes[name] = getattr(request, name)
        if request.tags is not None:
            changes["tags"] = {tag.strip() for tag in request.tags}
        if request.difficulty is not None:
            changes["difficulty"] = request.difficulty

        updated = replace(card, **changes)
        validate_card_fields(updated.question, updated.answer, sorted(updated.tags), updated.difficulty)
        self._repository.update_card(updated)
        return _card_response(updated)

    def delete_card(self, user_id: str, deck_id: str, card_id: str) -> None:
        deck = self._get_owned_deck(user_id, deck_id)
        card = self._get_deck_card(deck, card_id)
        self._repository.delete_card(card.id)
        logger.info("Deleted flashcard %s from deck %s", card.id, deck.id)

    def auto_generate_cards(self, user_id: str, deck_id: str, request: AutoGenerateRequest) -> List[CardResponse]:
        deck = self._get_owned_deck(user_id, deck_id)
        text = " ".join(sentence.strip() for sentence in request.sentences if sentence.strip())
        cards: List[Card] = []
        for generated in self._card_generator.generate_cards(text, request.count):
            try:
                validate_card_fields(
                    generated.question,
                    generated.answer,
                    [generated.type],
                    generated.difficulty,
                    generated=True,
                )
            except InvalidInputError as exc:
                logger.info("Discarding generated card: %s", exc)
                continue
            cards.append(
                Card(
                    deck_id=deck.id,
                    question=generated.question,
                    answer=generated.answer,
                    tags={generated.type},
                    difficulty=generated.difficulty,
                    ai_generated=True,
                )
            )
        self._repository.add_cards(deck.id, cards)
        return [_card_response(card) for card in cards]

    # endregion

    # region Quiz
    def compose_quiz(self, user_id: str, deck_id: str) -> Quiz:
        deck = self._get_study_deck(user_id, deck_id)
        card_ids = [card.id for card in deck.cards]
        states = self._repository.load_states(user_id, card_ids)
        lookups = {card_id: Found(state) for card_id, state in states.items()}
        composer = QuizComposer(
            distractor_source=self._distractor_source,
            rng=self._rng,
            distractor_count=self._config.distractor_count,
        )
        return composer.compose(deck, lookups, now=self._clock())

    def submit_answer(self, user_id: str, deck_id: str, request: SubmitAnswerRequest) -> SubmitAnswerResponse:
        deck = self._get_study_deck(user_id, deck_id)
        card = self._get_deck_card(deck, request.card_id)

        correct = normalize_answer(request.selected_option) == normalize_answer(card.answer)
        quality = quality_score(correct, request.time_spent_ms)

        with self._repository.review_lock(user_id, card.id):
            now = self._clock()
            prior = self._repository.load_state(user_id, card.id).resolve(now)
            updated = self._scheduler.next_state(prior, correct, request.time_spent_ms, now=now)
            updated = updated.with_attempt(correct)
            self._repository.save_state(user_id, card.id, updated)
            record = AttemptRecord.for_outcome(user_id, card.id, deck.id, request.selected_option, correct, now)
            self._repository.append_attempt(record)

        METRICS.record_review_outcome(quality, updated.interval)
        logger.debug(
            "Card %s for user %s: quality=%s ease=%.2f interval=%s",
            card.id,
            user_id,
            quality,
            updated.ease_factor,
            updated.interval,
        )

        states = self._repository.load_states(user_id, [c.id for c in deck.cards])
        explanation = (
            "Correct! Well done!" if correct else f"Incorrect. The correct answer is: {card.answer}"
        )
        return SubmitAnswerResponse(
            correct=correct,
            correct_answer=card.answer,
            selected_answer=request.selected_option,
            explanation=explanation,
            progress=AnswerProgress(
                repetitions=updated.repetitions,
                interval=updated.interval,
                ease_factor=updated.ease_factor,
                next_review_at=updated.next_review_at,
                is_mastered=updated.is_mastered,
                accuracy=round(updated.accuracy),
                quality_score=quality,
            ),
            next_review_in_days=updated.interval,
            history_id=record.id,
            deck_completion=deck_completion(deck.cards, states),
        )

    # endregion

    # region Statistics
    def deck_stats(self, user_id: str, deck_id: str) -> DeckStats:
        deck = self._get_study_deck(user_id, deck_id)
        states = self._repository.load_states(user_id, [card.id for card in deck.cards])
        return deck_stats(deck.cards, states, self._clock())

    def user_stats(self, user_id: str) -> UserStats:
        owned = self._repository.list_decks(owner_id=user_id)
        states = list(self._repository.load_states(user_id).values())
        history = self._repository.list_attempts(user_id)
        return user_stats(owned, states, history, self._clock().date())

    def weekly_progress(self, user_id: str) -> List[WeeklyProgressEntry]:
        states = self._repository.load_states(user_id).values()
        return weekly_breakdown(states, self._clock().date())

    def learning_history(
        self, user_id: str, deck_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[HistoryEntry]:
        records = self._repository.list_attempts(user_id, deck_id=deck_id, limit=limit)
        decks: Dict[str, Optional[Deck]] = {}
        entries: List[HistoryEntry] = []
        for record in records:
            if record.deck_id not in decks:
                decks[record.deck_id] = self._repository.get_deck(record.deck_id)
            deck = decks[record.deck_id]
            card = deck.find_card(record.card_id) if deck else None
            if deck is None or card is None:
                continue
            entries.append(
                HistoryEntry(
                    id=record.id,
                    question=card.question,
                    user_answer=record.user_answer,
                    correct_answer=card.answer,
                    is_correct=record.is_correct,
                    status=record.status.value,
                    deck_name=deck.name,
                    deck_category=deck.category,
                    created_at=record.created_at,
                )
            )
        return entries

    def learning_stats(self, user_id: str) -> LearningStats:
        history = self._repository.list_attempts(user_id)
        decks = {}
        for deck_id in {record.deck_id for record in history}:
            deck = self._repository.get_deck(deck_id)
            if deck is not None:
                decks[deck_id] = deck
        return learning_stats(history, decks)

    # endregion

    # region Analytics
    def generate_analytics(self, user_id: str) -> List[CategoryAnalyticsResponse]:
        states = self._repository.load_states(user_id)
        if not states:
            raise NotFoundError(f"No progress data found for user {user_id}")

        entries = []
        for deck in self._repository.list_decks():
            for card in deck.cards:
                state = states.get(card.id)
                if state is not None:
                    entries.append((deck.category, card, state))

        rows = category_analytics(entries, user_id, now=self._clock())
        for row in rows:
            self._repository.upsert_analytics(row)
        logger.info("Generated analytics for user %s across %d categories", user_id, len(rows))
        return [_analytics_response(row) for row in rows]

    def auto_generate_analytics(self, user_id: str) -> Optional[List[CategoryAnalyticsResponse]]:
        """Regenerate analytics only when the user was active within the last day."""

        latest = self._repository.list_attempts(user_id, limit=1)
        if not latest or latest[0].created_at < self._clock() - RECENT_ACTIVITY_WINDOW:
            return None
        return self.generate_analytics(user_id)

    def list_analytics(self, user_id: str) -> List[CategoryAnalyticsResponse]:
        rows = self._repository.list_analytics(user_id, limit=ANALYTICS_LIST_LIMIT)
        return [_analytics_response(row) for row in rows]

    def get_category_analytics(self, user_id: str, category: str) -> CategoryAnalyticsResponse:
        row = self._repository.get_analytics(user_id, category)
        if row is None:
            raise NotFoundError(f"Analytics not found for category {category}")
        return _analytics_response(row)

    # endregion


__all__ = ["StudyConfig", "StudyService"]
