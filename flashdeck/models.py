"""Pydantic models for the flashdeck API."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .generation import MAX_GENERATED_CARDS


class QuizOption(BaseModel):
    """Multiple-choice option representation."""

    label: str
    text: str
    is_correct: bool


class ProgressSnapshot(BaseModel):
    repetitions: int
    ease_factor: float
    interval: int


class QuizQuestion(BaseModel):
    """A single card rendered as a multiple-choice question."""

    card_id: str
    question: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    options: List[QuizOption]
    correct_answer: str
    difficulty: int
    progress: ProgressSnapshot


class QuizStatistics(BaseModel):
    total_cards: int
    learned_cards: int
    due_for_review: int


class Quiz(BaseModel):
    deck_id: str
    deck_name: str
    total_questions: int
    questions: List[QuizQuestion]
    statistics: QuizStatistics


class SubmitAnswerRequest(BaseModel):
    """Input body for answer submission."""

    card_id: str
    selected_option: str
    time_spent_ms: Optional[int] = Field(default=None, ge=0)

    @field_validator("card_id", "selected_option")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("card_id and selected_option are required")
        return value


class AnswerProgress(BaseModel):
    repetitions: int
    interval: int
    ease_factor: float
    next_review_at: datetime
    is_mastered: bool
    accuracy: int
    quality_score: int


class DeckCompletion(BaseModel):
    total: int
    mastered: int
    percentage: int


class SubmitAnswerResponse(BaseModel):
    correct: bool
    correct_answer: str
    selected_answer: str
    explanation: str
    progress: AnswerProgress
    next_review_in_days: int
    history_id: str
    deck_completion: DeckCompletion


class DeckStats(BaseModel):
    total_cards: int
    learned_cards: int
    due_for_review: int
    new_cards: int
    average_accuracy: int
    total_reviews: int
    next_review_time: Optional[datetime] = None


class StreakSummary(BaseModel):
    count: int
    last_activity: Optional[datetime] = None


class DeckCounts(BaseModel):
    total: int
    public_decks: int
    private_decks: int


class FlashcardCounts(BaseModel):
    total: int
    learned: int
    in_progress: int


class AccuracySummary(BaseModel):
    average: int
    total_reviews: int
    correct_reviews: int


class UserStats(BaseModel):
    daily_streak: StreakSummary
    decks: DeckCounts
    flashcards: FlashcardCounts
    accuracy: AccuracySummary


class WeeklyProgressEntry(BaseModel):
    day: str
    calendar_date: date
    cards_learned: int
    accuracy: int


class WeeklyProgressResponse(BaseModel):
    weekly_progress: List[WeeklyProgressEntry]


class CategoryAnalyticsResponse(BaseModel):
    category: str
    performance: float
    weak_areas: List[str]
    recommendations: List[str]
    updated_at: Optional[datetime] = None


class AnalyticsListResponse(BaseModel):
    message: str
    analytics: List[CategoryAnalyticsResponse]


class HistoryEntry(BaseModel):
    id: str
    question: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    status: str
    deck_name: str
    deck_category: str
    created_at: datetime


class RecentDeck(BaseModel):
    id: str
    name: str
    category: str


class LearningStats(BaseModel):
    total_attempts: int
    correct_answers: int
    accuracy: int
    recent_decks: List[RecentDeck]


class DeckCreateRequest(BaseModel):
    name: str
    category: str = "general"
    is_public: bool = False
    shared_with: List[str] = Field(default_factory=list)

    @field_validator("name", "category")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Deck name and category must be non-empty")
        return value.strip()


class DeckResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    category: str
    is_public: bool
    card_count: int


class CardCreateRequest(BaseModel):
    """Input body for creating a card by hand."""

    question: str
    answer: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    difficulty: int = Field(default=3, ge=1, le=5)


class CardUpdateRequest(BaseModel):
    """Partial card update; only the fields sent are changed."""

    question: Optional[str] = None
    answer: Optional[str] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    tags: Optional[List[str]] = None
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)

    @model_validator(mode="after")
    def validate_has_changes(self) -> "CardUpdateRequest":
        if not self.model_fields_set:
            raise ValueError("At least one field is required to update")
        return self


class MessageResponse(BaseModel):
    message: str


class CardResponse(BaseModel):
    id: str
    deck_id: str
    question: str
    answer: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    tags: List[str]
    difficulty: int
    ai_generated: bool


class AutoGenerateRequest(BaseModel):
    """Input body for AI assisted card creation."""

    sentences: List[str]
    count: int = Field(ge=1, le=MAX_GENERATED_CARDS)

    @model_validator(mode="after")
    def validate_sentences(self) -> "AutoGenerateRequest":
        if not any(sentence.strip() for sentence in self.sentences):
            raise ValueError("Please provide sentences to generate flashcards")
        return self


class AutoGenerateResponse(BaseModel):
    message: str
    flashcards: List[CardResponse]


__all__ = [
    "AnalyticsListResponse",
    "AnswerProgress",
    "AutoGenerateRequest",
    "AutoGenerateResponse",
    "CardCreateRequest",
    "CardResponse",
    "CardUpdateRequest",
    "CategoryAnalyticsResponse",
    "DeckCompletion",
    "DeckCreateRequest",
    "DeckResponse",
    "DeckStats",
    "HistoryEntry",
    "LearningStats",
    "MessageResponse",
    "ProgressSnapshot",
    "Quiz",
    "QuizOption",
    "QuizQuestion",
    "QuizStatistics",
    "SubmitAnswerRequest",
    "SubmitAnswerResponse",
    "UserStats",
    "WeeklyProgressEntry",
    "WeeklyProgressResponse",
]
