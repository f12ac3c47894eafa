"""Concrete repository implementations backed by memory and SQLite."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .domain import (
    AttemptRecord,
    AttemptStatus,
    Card,
    CategoryAnalytics,
    Deck,
    Default,
    Found,
    ReviewLookup,
    ReviewState,
)
from .errors import NotFoundError
from .repositories import StudyRepository


logger = logging.getLogger(__name__)


class KeyedLocks:
    """Hands out one lock per key while at least one caller holds or awaits it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._holders: Dict[Tuple[str, str], int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Tuple[str, str]) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]


class InMemoryRepository(StudyRepository):
    """Process-local repository used for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._review_locks = KeyedLocks()
        self._decks: Dict[str, Deck] = {}
        self._states: Dict[str, Dict[str, ReviewState]] = defaultdict(dict)
        self._attempts: List[AttemptRecord] = []
        self._analytics: Dict[Tuple[str, str], CategoryAnalytics] = {}

    # region Decks
    def get_deck(self, deck_id: str) -> Optional[Deck]:
        with self._lock:
            deck = self._decks.get(deck_id)
            if deck is None:
                return None
            return Deck(
                id=deck.id,
                owner_id=deck.owner_id,
                name=deck.name,
                category=deck.category,
                is_public=deck.is_public,
                shared_with=set(deck.shared_with),
                cards=list(deck.cards),
            )

    def save_deck(self, deck: Deck) -> None:
        with self._lock:
            existing = self._decks.get(deck.id)
            cards = list(deck.cards) if deck.cards or existing is None else existing.cards
            self._decks[deck.id] = Deck(
                id=deck.id,
                owner_id=deck.owner_id,
                name=deck.name,
                category=deck.category,
                is_public=deck.is_public,
                shared_with=set(deck.shared_with),
                cards=cards,
            )

    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> None:
        with self._lock:
            deck = self._decks.get(deck_id)
            if deck is None:
                raise NotFoundError(f"Deck {deck_id} does not exist")
            deck.cards.extend(cards)

    def list_decks(self, owner_id: Optional[str] = None) -> List[Deck]:
        with self._lock:
            deck_ids = [
                deck.id for deck in self._decks.values() if owner_id is None or deck.owner_id == owner_id
            ]
        return [deck for deck in (self.get_deck(deck_id) for deck_id in deck_ids) if deck is not None]

    def get_card(self, card_id: str) -> Optional[Card]:
        with self._lock:
            for deck in self._decks.values():
                card = deck.find_card(card_id)
                if card is not None:
                    return card
        return None

    def update_card(self, card: Card) -> None:
        with self._lock:
            deck = self._decks.get(card.deck_id)
            positions = [i for i, stored in enumerate(deck.cards) if stored.id == card.id] if deck else []
            if not positions:
                raise NotFoundError(f"Flashcard {card.id} does not exist")
            deck.cards[positions[0]] = card

    def delete_card(self, card_id: str) -> None:
        with self._lock:
            for deck in self._decks.values():
                deck.cards = [card for card in deck.cards if card.id != card_id]
            for user_states in self._states.values():
                user_states.pop(card_id, None)
            self._attempts = [record for record in self._attempts if record.card_id != card_id]

    # endregion

    # region Review state
    def load_state(self, user_id: str, card_id: str) -> ReviewLookup:
        with self._lock:
            state = self._states[user_id].get(card_id)
        return Found(state) if state is not None else Default()

    def load_states(self, user_id: str, card_ids: Optional[Iterable[str]] = None) -> Dict[str, ReviewState]:
        with self._lock:
            user_states = dict(self._states[user_id])
        if card_ids is None:
            return user_states
        wanted = set(card_ids)
        return {card_id: state for card_id, state in user_states.items() if card_id in wanted}

    def save_state(self, user_id: str, card_id: str, state: ReviewState) -> None:
        with self._lock:
            self._states[user_id][card_id] = state

    def review_lock(self, user_id: str, card_id: str):
        return self._review_locks.hold((user_id, card_id))

    # endregion

    # region History
    def append_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            self._attempts.append(record)

    def list_attempts(
        self, user_id: str, deck_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[AttemptRecord]:
        with self._lock:
            records = [
                record
                for record in reversed(self._attempts)
                if record.user_id == user_id and (deck_id is None or record.deck_id == deck_id)
            ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records[:limit] if limit else records

    # endregion

    # region Analytics
    def upsert_analytics(self, analytics: CategoryAnalytics) -> None:
        with self._lock:
            self._analytics[(analytics.user_id, analytics.category)] = analytics

    def get_analytics(self, user_id: str, category: str) -> Optional[CategoryAnalytics]:
        with self._lock:
            return self._analytics.get((user_id, category))

    def list_analytics(self, user_id: str, limit: Optional[int] = None) -> List[CategoryAnalytics]:
        with self._lock:
            rows = [row for (owner, _), row in self._analytics.items() if owner == user_id]
        rows.sort(key=lambda row: row.updated_at or datetime.min, reverse=True)
        return rows[:limit] if limit else rows

    # endregion


class SqliteStudyRepository(StudyRepository):
    """Stores decks, cards, review state, history and analytics in SQLite."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._review_locks = KeyedLocks()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _initialise_schema(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS decks (
                    deck_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    is_public INTEGER NOT NULL DEFAULT 0,
                    shared_with_json TEXT NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS cards (
                    card_id TEXT PRIMARY KEY,
                    deck_id TEXT NOT NULL REFERENCES decks(deck_id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    payload_json TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS review_states (
                    user_id TEXT NOT NULL,
                    card_id TEXT NOT NULL REFERENCES cards(card_id) ON DELETE CASCADE,
                    state_json TEXT NOT NULL,
                    PRIMARY KEY (user_id, card_id)
                );

                CREATE TABLE IF NOT EXISTS attempts (
                    attempt_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    card_id TEXT NOT NULL REFERENCES cards(card_id) ON DELETE CASCADE,
                    deck_id TEXT NOT NULL,
                    user_answer TEXT NOT NULL,
                    is_correct INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS category_analytics (
                    user_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    performance REAL NOT NULL,
                    weak_areas_json TEXT NOT NULL,
                    recommendations_json TEXT NOT NULL,
                    updated_at TEXT,
                    PRIMARY KEY (user_id, category)
                );
                """
            )
            self._conn.commit()

    # DeckRepository ------------------------------------------------------
    def get_deck(self, deck_id: str) -> Optional[Deck]:
        with self._lock:
            cursor = self._conn.cursor()
            row = cursor.execute("SELECT * FROM decks WHERE deck_id = ?", (deck_id,)).fetchone()
            if not row:
                return None
            card_rows = cursor.execute(
                "SELECT payload_json FROM cards WHERE deck_id = ? ORDER BY position",
                (deck_id,),
            ).fetchall()
        return Deck(
            id=row["deck_id"],
            owner_id=row["owner_id"],
            name=row["name"],
            category=row["category"],
            is_public=bool(row["is_public"]),
            shared_with=set(json.loads(row["shared_with_json"])),
            cards=[Card.from_dict(json.loads(card_row["payload_json"])) for card_row in card_rows],
        )

    def save_deck(self, deck: Deck) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT INTO decks (deck_id, owner_id, name, category, is_public, shared_with_json)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(deck_id) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    name = excluded.name,
                    category = excluded.category,
                    is_public = excluded.is_public,
                    shared_with_json = excluded.shared_with_json
                """,
                (
                    deck.id,
                    deck.owner_id,
                    deck.name,
                    deck.category,
                    int(deck.is_public),
                    json.dumps(sorted(deck.shared_with)),
                ),
            )
            self._conn.commit()
        if deck.cards:
            self.add_cards(deck.id, deck.cards)

    def add_cards(self, deck_id: str, cards: Iterable[Card]) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            if not cursor.execute("SELECT 1 FROM decks WHERE deck_id = ?", (deck_id,)).fetchone():
                raise NotFoundError(f"Deck {deck_id} does not exist")
            start = cursor.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM cards WHERE deck_id = ?", (deck_id,)
            ).fetchone()[0]
            payloads = [
                (card.id, deck_id, start + offset, json.dumps(card.to_dict()))
                for offset, card in enumerate(cards)
            ]
            if not payloads:
                return
            # REPLACE would cascade into review_states and attempts.
            cursor.executemany(
                """
                INSERT INTO cards (card_id, deck_id, position, payload_json)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(card_id) DO UPDATE SET payload_json = excluded.payload_json
                """,
                payloads,
            )
            self._conn.commit()

    def list_decks(self, owner_id: Optional[str] = None) -> List[Deck]:
        with self._lock:
            cursor = self._conn.cursor()
            if owner_id is None:
                rows = cursor.execute("SELECT deck_id FROM decks ORDER BY rowid").fetchall()
            else:
                rows = cursor.execute(
                    "SELECT deck_id FROM decks WHERE owner_id = ? ORDER BY rowid", (owner_id,)
                ).fetchall()
        decks = (self.get_deck(row["deck_id"]) for row in rows)
        return [deck for deck in decks if deck is not None]

    def get_card(self, card_id: str) -> Optional[Card]:
        with self._lock:
            row = self._conn.cursor().execute(
                "SELECT payload_json FROM cards WHERE card_id = ?", (card_id,)
            ).fetchone()
        return Card.from_dict(json.loads(row["payload_json"])) if row else None

    def update_card(self, card: Card) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                "UPDATE cards SET payload_json = ? WHERE card_id = ? AND deck_id = ?",
                (json.dumps(card.to_dict()), card.id, card.deck_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Flashcard {card.id} does not exist")
            self._conn.commit()

    def delete_card(self, card_id: str) -> None:
        # review_states and attempts follow through ON DELETE CASCADE
        with self._lock:
            self._conn.cursor().execute("DELETE FROM cards WHERE card_id = ?", (card_id,))
            self._conn.commit()

    # ReviewStateRepository -----------------------------------------------
    def load_state(self, user_id: str, card_id: str) -> ReviewLookup:
        with self._lock:
            cursor = self._conn.cursor()
            row = cursor.execute(
                "SELECT state_json FROM review_states WHERE user_id = ? AND card_id = ?",
                (user_id, card_id),
            ).fetchone()
        if not row:
            return Default()
        return Found(ReviewState.from_dict(json.loads(row["state_json"])))

    def load_states(self, user_id: str, card_ids: Optional[Iterable[str]] = None) -> Dict[str, ReviewState]:
        with self._lock:
            cursor = self._conn.cursor()
            rows = cursor.execute(
                "SELECT card_id, state_json FROM review_states WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        wanted = set(card_ids) if card_ids is not None else None
        return {
            row["card_id"]: ReviewState.from_dict(json.loads(row["state_json"]))
            for row in rows
            if wanted is None or row["card_id"] in wanted
        }

    def save_state(self, user_id: str, card_id: str, state: ReviewState) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO review_states (user_id, card_id, state_json)
                VALUES (?, ?, ?)
                """,
                (user_id, card_id, json.dumps(state.to_dict())),
            )
            self._conn.commit()

    def review_lock(self, user_id: str, card_id: str):
        return self._review_locks.hold((user_id, card_id))

    # AttemptRepository ---------------------------------------------------
    def append_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT INTO attempts
                    (attempt_id, user_id, card_id, deck_id, user_answer, is_correct, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.card_id,
                    record.deck_id,
                    record.user_answer,
                    int(record.is_correct),
                    record.status.value,
                    record.created_at.isoformat(),
                ),
            )
            self._conn.commit()

    def list_attempts(
        self, user_id: str, deck_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[AttemptRecord]:
        query = "SELECT * FROM attempts WHERE user_id = ?"
        params: list = [user_id]
        if deck_id is not None:
            query += " AND deck_id = ?"
            params.append(deck_id)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._conn.cursor().execute(query, params).fetchall()
        return [
            AttemptRecord(
                id=row["attempt_id"],
                user_id=row["user_id"],
                card_id=row["card_id"],
                deck_id=row["deck_id"],
                user_answer=row["user_answer"],
                is_correct=bool(row["is_correct"]),
                status=AttemptStatus(row["status"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # AnalyticsRepository -------------------------------------------------
    def upsert_analytics(self, analytics: CategoryAnalytics) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT INTO category_analytics
                    (user_id, category, performance, weak_areas_json, recommendations_json, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, category) DO UPDATE SET
                    performance = excluded.performance,
                    weak_areas_json = excluded.weak_areas_json,
                    recommendations_json = excluded.recommendations_json,
                    updated_at = excluded.updated_at
                """,
                (
                    analytics.user_id,
                    analytics.category,
                    analytics.performance,
                    json.dumps(analytics.weak_areas),
                    json.dumps(analytics.recommendations),
                    analytics.updated_at.isoformat() if analytics.updated_at else None,
                ),
            )
            self._conn.commit()
        logger.debug("Upserted analytics for %s/%s", analytics.user_id, analytics.category)

    def get_analytics(self, user_id: str, category: str) -> Optional[CategoryAnalytics]:
        with self._lock:
            row = self._conn.cursor().execute(
                "SELECT * FROM category_analytics WHERE user_id = ? AND category = ?",
                (user_id, category),
            ).fetchone()
        return self._analytics_from_row(row) if row else None

    def list_analytics(self, user_id: str, limit: Optional[int] = None) -> List[CategoryAnalytics]:
        query = "SELECT * FROM category_analytics WHERE user_id = ? ORDER BY updated_at DESC"
        params: list = [user_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._conn.cursor().execute(query, params).fetchall()
        return [self._analytics_from_row(row) for row in rows]

    @staticmethod
    def _analytics_from_row(row: sqlite3.Row) -> CategoryAnalytics:
        return CategoryAnalytics(
            user_id=row["user_id"],
            category=row["category"],
            performance=row["performance"],
            weak_areas=json.loads(row["weak_areas_json"]),
            recommendations=json.loads(row["recommendations_json"]),
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )


__all__ = ["InMemoryRepository", "KeyedLocks", "SqliteStudyRepository"]
