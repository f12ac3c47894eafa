"""Domain models shared across services and repositories."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set, Union
from uuid import uuid4


DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
DEFAULT_INTERVAL = 1
DEFAULT_CATEGORY = "general"


def _new_id() -> str:
    return str(uuid4())


class AttemptStatus(str, Enum):
    MASTERED = "MASTERED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


@dataclass
class Card:
    """A question/answer pair owned by a deck."""

    question: str
    answer: str
    deck_id: str
    id: str = field(default_factory=_new_id)
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    difficulty: int = 3
    ai_generated: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deck_id": self.deck_id,
            "question": self.question,
            "answer": self.answer,
            "image_url": self.image_url,
            "audio_url": self.audio_url,
            "tags": sorted(self.tags),
            "difficulty": self.difficulty,
            "ai_generated": self.ai_generated,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Card":
        return cls(
            id=payload["id"],
            deck_id=payload["deck_id"],
            question=payload["question"],
            answer=payload["answer"],
            image_url=payload.get("image_url"),
            audio_url=payload.get("audio_url"),
            tags=set(payload.get("tags") or []),
            difficulty=int(payload.get("difficulty", 3)),
            ai_generated=bool(payload.get("ai_generated", False)),
        )


@dataclass
class Deck:
    """A named collection of cards with its sharing settings."""

    owner_id: str
    name: str
    id: str = field(default_factory=_new_id)
    category: str = DEFAULT_CATEGORY
    is_public: bool = False
    shared_with: Set[str] = field(default_factory=set)
    cards: List[Card] = field(default_factory=list)

    def can_study(self, user_id: str) -> bool:
        return self.is_public or user_id == self.owner_id or user_id in self.shared_with

    def find_card(self, card_id: str) -> Optional[Card]:
        return next((card for card in self.cards if card.id == card_id), None)


@dataclass(frozen=True)
class ReviewState:
    """Spaced repetition state of one card for one reviewing user."""

    next_review_at: datetime
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = DEFAULT_INTERVAL
    repetitions: int = 0
    last_reviewed_at: Optional[datetime] = None
    is_mastered: bool = False
    total_attempts: int = 0
    correct_attempts: int = 0

    def __post_init__(self) -> None:
        if self.correct_attempts > self.total_attempts:
            raise ValueError("correct_attempts cannot exceed total_attempts")
        if self.ease_factor < MIN_EASE_FACTOR:
            raise ValueError(f"ease_factor must be at least {MIN_EASE_FACTOR}")
        if self.interval < 1 or self.repetitions < 0:
            raise ValueError("interval must be >= 1 and repetitions >= 0")

    @classmethod
    def default(cls, now: datetime) -> "ReviewState":
        return cls(next_review_at=now)

    @property
    def accuracy(self) -> float:
        if not self.total_attempts:
            return 0.0
        return self.correct_attempts / self.total_attempts * 100

    def is_due(self, now: datetime) -> bool:
        return not self.is_mastered or self.next_review_at <= now

    def with_attempt(self, correct: bool) -> "ReviewState":
        """Return a copy with the attempt counters bumped."""

        return replace(
            self,
            total_attempts=self.total_attempts + 1,
            correct_attempts=self.correct_attempts + (1 if correct else 0),
        )

    def to_dict(self) -> dict:
        return {
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "next_review_at": self.next_review_at.isoformat(),
            "last_reviewed_at": self.last_reviewed_at.isoformat() if self.last_reviewed_at else None,
            "is_mastered": self.is_mastered,
            "total_attempts": self.total_attempts,
            "correct_attempts": self.correct_attempts,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ReviewState":
        last_reviewed = payload.get("last_reviewed_at")
        return cls(
            ease_factor=float(payload.get("ease_factor", DEFAULT_EASE_FACTOR)),
            interval=int(payload.get("interval", DEFAULT_INTERVAL)),
            repetitions=int(payload.get("repetitions", 0)),
            next_review_at=datetime.fromisoformat(payload["next_review_at"]),
            last_reviewed_at=datetime.fromisoformat(last_reviewed) if last_reviewed else None,
            is_mastered=bool(payload.get("is_mastered", False)),
            total_attempts=int(payload.get("total_attempts", 0)),
            correct_attempts=int(payload.get("correct_attempts", 0)),
        )


@dataclass(frozen=True)
class Found:
    state: ReviewState

    def resolve(self, now: datetime) -> ReviewState:
        return self.state


@dataclass(frozen=True)
class Default:
    """No stored review state yet; the card starts from the defaults."""

    def resolve(self, now: datetime) -> ReviewState:
        return ReviewState.default(now)


ReviewLookup = Union[Found, Default]


@dataclass(frozen=True)
class AttemptRecord:
    """Write-once history entry for a single answer submission."""

    user_id: str
    card_id: str
    deck_id: str
    user_answer: str
    is_correct: bool
    status: AttemptStatus
    created_at: datetime
    id: str = field(default_factory=_new_id)

    @classmethod
    def for_outcome(
        cls, user_id: str, card_id: str, deck_id: str, user_answer: str, correct: bool, now: datetime
    ) -> "AttemptRecord":
        return cls(
            user_id=user_id,
            card_id=card_id,
            deck_id=deck_id,
            user_answer=user_answer,
            is_correct=correct,
            status=AttemptStatus.MASTERED if correct else AttemptStatus.NEEDS_REVIEW,
            created_at=now,
        )


@dataclass
class CategoryAnalytics:
    """Derived per-category performance view for a user."""

    user_id: str
    category: str
    performance: float
    weak_areas: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None


__all__ = [
    "AttemptRecord",
    "AttemptStatus",
    "Card",
    "CategoryAnalytics",
    "Deck",
    "Default",
    "Found",
    "ReviewLookup",
    "ReviewState",
]
