"""Repository interfaces for flashdeck persistent state."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ContextManager, Dict, Iterable, List, Optional

from .domain import AttemptRecord, Card, CategoryAnalytics, Deck, ReviewLookup, ReviewState


class DeckRepository(ABC):
    """Store decks together with their cards."""

    @abstractmethod
    def get_deck(self, deck_id: str) -> Optional[Deck]:
        """Return the deck with its cards, or ``None``."""

    @abstractmethod
    def save_deck(self, deck: Deck) -> None:
        """Create or replace deck metadata."""

    @abstractmethod
    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> None:
        """Append cards to an existing deck."""

    @abstractmethod
    def list_decks(self, owner_id: Optional[str] = None) -> List[Deck]:
        """Return all decks, or the ones owned by ``owner_id``."""

    @abstractmethod
    def get_card(self, card_id: str) -> Optional[Card]:
        """Return a card from any deck, or ``None``."""

    @abstractmethod
    def update_card(self, card: Card) -> None:
        """Replace a stored card in place, keeping its position."""

    @abstractmethod
    def delete_card(self, card_id: str) -> None:
        """Remove a card together with its review states and history."""


class ReviewStateRepository(ABC):
    """Maintain review state per reviewing user and card."""

    @abstractmethod
    def load_state(self, user_id: str, card_id: str) -> ReviewLookup:
        """Return ``Found(state)`` or ``Default()``."""

    @abstractmethod
    def load_states(self, user_id: str, card_ids: Optional[Iterable[str]] = None) -> Dict[str, ReviewState]:
        """Return stored states keyed by card id; all of the user's when ``card_ids`` is None."""

    @abstractmethod
    def save_state(self, user_id: str, card_id: str, state: ReviewState) -> None:
        """Persist the review state."""

    @abstractmethod
    def review_lock(self, user_id: str, card_id: str) -> ContextManager:
        """Serialize read-modify-write cycles for one (user, card) pair."""


class AttemptRepository(ABC):
    """Append-only answer history."""

    @abstractmethod
    def append_attempt(self, record: AttemptRecord) -> None:
        """Persist a history entry."""

    @abstractmethod
    def list_attempts(
        self, user_id: str, deck_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[AttemptRecord]:
        """Return history entries, newest first."""


class AnalyticsRepository(ABC):
    """Derived per-category analytics."""

    @abstractmethod
    def upsert_analytics(self, analytics: CategoryAnalytics) -> None:
        """Replace the row for (user, category) in a single write."""

    @abstractmethod
    def get_analytics(self, user_id: str, category: str) -> Optional[CategoryAnalytics]:
        """Return the stored analytics row, if present."""

    @abstractmethod
    def list_analytics(self, user_id: str, limit: Optional[int] = None) -> List[CategoryAnalytics]:
        """Return rows ordered by most recent update."""


class StudyRepository(DeckRepository, ReviewStateRepository, AttemptRepository, AnalyticsRepository):
    """Everything the study service needs from persistence."""


__all__ = [
    "AnalyticsRepository",
    "AttemptRepository",
    "DeckRepository",
    "ReviewStateRepository",
    "StudyRepository",
]
