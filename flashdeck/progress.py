"""Progress aggregation over review states and attempt history."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .domain import AttemptRecord, Card, CategoryAnalytics, Deck, ReviewState
from .models import (
    AccuracySummary,
    DeckCompletion,
    DeckCounts,
    DeckStats,
    FlashcardCounts,
    LearningStats,
    RecentDeck,
    StreakSummary,
    UserStats,
    WeeklyProgressEntry,
)


WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
WEAK_CARD_THRESHOLD = 60.0
LOW_PERFORMANCE = 50.0
MEDIUM_PERFORMANCE = 70.0
RECENT_DECK_LIMIT = 5


def daily_streak(history: Iterable[AttemptRecord], today: date) -> int:
    """Count consecutive active days ending today, or yesterday if today is idle."""

    active_days = {record.created_at.date() for record in history}
    if not active_days:
        return 0
    cursor = today if today in active_days else today - timedelta(days=1)
    streak = 0
    while cursor in active_days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def average_accuracy(states: Iterable[ReviewState]) -> float:
    """Mean per-card accuracy in percent over cards that were attempted."""

    accuracies = [state.accuracy for state in states if state.total_attempts > 0]
    if not accuracies:
        return 0.0
    return sum(accuracies) / len(accuracies)


def weekly_breakdown(states: Iterable[ReviewState], today: date) -> List[WeeklyProgressEntry]:
    """Per-day learned counts and accuracy over the trailing seven days."""

    start = today - timedelta(days=6)
    buckets: Dict[date, List[int]] = OrderedDict(
        (start + timedelta(days=offset), [0, 0, 0]) for offset in range(7)
    )
    for state in states:
        if state.last_reviewed_at is None:
            continue
        bucket = buckets.get(state.last_reviewed_at.date())
        if bucket is None:
            continue
        if state.is_mastered:
            bucket[0] += 1
        bucket[1] += state.correct_attempts
        bucket[2] += state.total_attempts

    entries = [
        WeeklyProgressEntry(
            day=WEEKDAY_LABELS[day.weekday()],
            calendar_date=day,
            cards_learned=learned,
            accuracy=round(correct / total * 100) if total else 0,
        )
        for day, (learned, correct, total) in buckets.items()
    ]
    return sorted(entries, key=lambda entry: entry.calendar_date.weekday())


@dataclass
class _CategoryTotals:
    total: int = 0
    correct: int = 0
    cards: List[Tuple[Card, float]] = field(default_factory=list)


def recommendations_for(category: str, performance: float, weak_areas: Sequence[str]) -> List[str]:
    if performance < LOW_PERFORMANCE:
        advice = [
            f"Focus more on {category} fundamentals",
            f"Increase daily practice for {category}",
        ]
    elif performance < MEDIUM_PERFORMANCE:
        advice = [f"Review {category} concepts regularly"]
    else:
        advice = [f"Great progress in {category}! Try advanced topics"]
    advice.extend(f"Review {area} topics in {category}" for area in weak_areas)
    return advice


def category_analytics(
    entries: Iterable[Tuple[str, Card, ReviewState]],
    user_id: str,
    now: Optional[datetime] = None,
) -> List[CategoryAnalytics]:
    """Fold ``(category, card, state)`` triples into one analytics row per category."""

    totals: Dict[str, _CategoryTotals] = OrderedDict()
    for category, card, state in entries:
        bucket = totals.setdefault(category, _CategoryTotals())
        bucket.total += state.total_attempts
        bucket.correct += state.correct_attempts
        bucket.cards.append((card, state.accuracy))

    results: List[CategoryAnalytics] = []
    for category, bucket in totals.items():
        performance = bucket.correct / bucket.total * 100 if bucket.total else 0.0
        weak_areas: List[str] = []
        for card, card_performance in bucket.cards:
            if card_performance >= WEAK_CARD_THRESHOLD:
                continue
            for tag in sorted(card.tags):
                if tag not in weak_areas:
                    weak_areas.append(tag)
        results.append(
            CategoryAnalytics(
                user_id=user_id,
                category=category,
                performance=round(performance, 2),
                weak_areas=weak_areas,
                recommendations=recommendations_for(category, performance, weak_areas),
                updated_at=now,
            )
        )
    return results


def deck_stats(cards: Sequence[Card], states: Mapping[str, ReviewState], now: datetime) -> DeckStats:
    """Learning statistics of one deck for one user."""

    learned = due = new = reviews = 0
    attempted: List[ReviewState] = []
    next_reviews: List[datetime] = []
    for card in cards:
        state = states.get(card.id)
        if state is None:
            new += 1
            due += 1
            continue
        reviews += state.total_attempts
        if state.total_attempts:
            attempted.append(state)
        if state.is_mastered:
            learned += 1
        if state.next_review_at <= now:
            due += 1
        next_reviews.append(state.next_review_at)

    return DeckStats(
        total_cards=len(cards),
        learned_cards=learned,
        due_for_review=due,
        new_cards=new,
        average_accuracy=round(average_accuracy(attempted)),
        total_reviews=reviews,
        next_review_time=min(next_reviews) if next_reviews else None,
    )


def deck_completion(cards: Sequence[Card], states: Mapping[str, ReviewState]) -> DeckCompletion:
    mastered = sum(1 for card in cards if card.id in states and states[card.id].is_mastered)
    total = len(cards)
    return DeckCompletion(
        total=total,
        mastered=mastered,
        percentage=round(mastered / total * 100) if total else 0,
    )


def user_stats(
    owned_decks: Sequence[Deck],
    states: Sequence[ReviewState],
    history: Sequence[AttemptRecord],
    today: date,
) -> UserStats:
    last_activity = max((record.created_at for record in history), default=None)
    return UserStats(
        daily_streak=StreakSummary(count=daily_streak(history, today), last_activity=last_activity),
        decks=DeckCounts(
            total=len(owned_decks),
            public_decks=sum(1 for deck in owned_decks if deck.is_public),
            private_decks=sum(1 for deck in owned_decks if not deck.is_public),
        ),
        flashcards=FlashcardCounts(
            total=sum(len(deck.cards) for deck in owned_decks),
            learned=sum(1 for state in states if state.is_mastered),
            in_progress=sum(1 for state in states if not state.is_mastered),
        ),
        accuracy=AccuracySummary(
            average=round(average_accuracy(states)),
            total_reviews=sum(state.total_attempts for state in states),
            correct_reviews=sum(state.correct_attempts for state in states),
        ),
    )


def learning_stats(history: Sequence[AttemptRecord], decks: Mapping[str, Deck]) -> LearningStats:
    """Totals over the attempt history plus the most recently studied decks."""

    total = len(history)
    correct = sum(1 for record in history if record.is_correct)
    recent: List[RecentDeck] = []
    seen: Set[str] = set()
    for record in sorted(history, key=lambda item: item.created_at, reverse=True):
        if record.deck_id in seen or record.deck_id not in decks:
            continue
        seen.add(record.deck_id)
        deck = decks[record.deck_id]
        recent.append(RecentDeck(id=deck.id, name=deck.name, category=deck.category))
        if len(recent) >= RECENT_DECK_LIMIT:
            break
    return LearningStats(
        total_attempts=total,
        correct_answers=correct,
        accuracy=round(correct / total * 100) if total else 0,
        recent_decks=recent,
    )


__all__ = [
    "average_accuracy",
    "category_analytics",
    "daily_streak",
    "deck_completion",
    "deck_stats",
    "learning_stats",
    "recommendations_for",
    "user_stats",
    "weekly_breakdown",
]
