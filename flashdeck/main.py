"""FastAPI application wiring for flashdeck."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query

from .distractors import GenerativeDistractorSource
from .errors import EmptyDeckError, InvalidInputError, NotFoundError, UnauthorizedError
from .generation import CardGenerator, HuggingFaceTextGenerator
from .models import (
    AnalyticsListResponse,
    AutoGenerateRequest,
    AutoGenerateResponse,
    CardCreateRequest,
    CardResponse,
    CardUpdateRequest,
    CategoryAnalyticsResponse,
    DeckCreateRequest,
    DeckResponse,
    DeckStats,
    HistoryEntry,
    LearningStats,
    MessageResponse,
    Quiz,
    SubmitAnswerRequest,
    SubmitAnswerResponse,
    UserStats,
    WeeklyProgressResponse,
)
from .quiz import DISTRACTORS_PER_QUESTION
from .scheduler import IntervalPolicy, SchedulerConfig
from .services import StudyConfig, StudyService
from .storage import InMemoryRepository, SqliteStudyRepository


logger = logging.getLogger(__name__)

app = FastAPI(title="flashdeck", version="0.1.0")


def get_study_service() -> StudyService:
    return app.state.study_service


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id.strip()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


DOMAIN_ERRORS = (NotFoundError, UnauthorizedError, InvalidInputError, EmptyDeckError)


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=os.getenv("FLASHDECK_LOG_LEVEL", "INFO").upper())

    config = StudyConfig(
        scheduler=SchedulerConfig(
            interval_policy=IntervalPolicy(os.getenv("FLASHDECK_INTERVAL_POLICY", "immediate"))
        ),
        distractor_count=int(os.getenv("FLASHDECK_DISTRACTOR_COUNT", str(DISTRACTORS_PER_QUESTION))),
    )

    db_path = os.getenv("FLASHDECK_DB_PATH")
    repository = SqliteStudyRepository(Path(db_path)) if db_path else InMemoryRepository()

    distractor_source = None
    card_generator = None
    api_key = os.getenv("HUGGING_FACE_API_KEY")
    if api_key:
        try:
            generator = HuggingFaceTextGenerator(
                api_key,
                model_name=os.getenv("FLASHDECK_HF_MODEL", "mistralai/Mixtral-8x7B-Instruct-v0.1"),
                timeout=float(os.getenv("FLASHDECK_HF_TIMEOUT", "10")),
            )
        except ValueError as exc:
            logger.warning("Generative text disabled: %s", exc)
        else:
            distractor_source = GenerativeDistractorSource(generator)
            card_generator = CardGenerator(generator)

    app.state.repository = repository
    app.state.study_config = config
    app.state.study_service = StudyService(
        repository,
        config=config,
        distractor_source=distractor_source,
        card_generator=card_generator,
    )


@app.post("/v1/decks", response_model=DeckResponse, status_code=201)
def create_deck(
    request: DeckCreateRequest,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> DeckResponse:
    return service.create_deck(user_id, request)


@app.post("/v1/decks/{deck_id}/cards", response_model=CardResponse, status_code=201)
def create_card(
    deck_id: str,
    request: CardCreateRequest,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> CardResponse:
    try:
        return service.add_card(user_id, deck_id, request)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/v1/decks/{deck_id}/cards", response_model=List[CardResponse])
def list_cards(
    deck_id: str,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> List[CardResponse]:
    try:
        return service.list_cards(user_id, deck_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.patch("/v1/decks/{deck_id}/cards/{card_id}", response_model=CardResponse)
def update_card(
    deck_id: str,
    card_id: str,
    request: CardUpdateRequest,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> CardResponse:
    try:
        return service.update_card(user_id, deck_id, card_id, request)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.delete("/v1/decks/{deck_id}/cards/{card_id}", response_model=MessageResponse)
def delete_card(
    deck_id: str,
    card_id: str,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> MessageResponse:
    try:
        service.delete_card(user_id, deck_id, card_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Flashcard deleted successfully")


@app.post("/v1/decks/{deck_id}/cards/auto", response_model=AutoGenerateResponse, status_code=201)
def auto_generate_cards(
    deck_id: str,
    request: AutoGenerateRequest,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> AutoGenerateResponse:
    try:
        cards = service.auto_generate_cards(user_id, deck_id, request)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return AutoGenerateResponse(
        message=f"{len(cards)} flashcards generated successfully", flashcards=cards
    )


@app.get("/v1/decks/{deck_id}/quiz", response_model=Quiz)
def quiz(
    deck_id: str,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> Quiz:
    try:
        return service.compose_quiz(user_id, deck_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.post("/v1/decks/{deck_id}/answers", response_model=SubmitAnswerResponse)
def submit_answer(
    deck_id: str,
    request: SubmitAnswerRequest,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> SubmitAnswerResponse:
    try:
        return service.submit_answer(user_id, deck_id, request)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/v1/decks/{deck_id}/stats", response_model=DeckStats)
def deck_stats(
    deck_id: str,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> DeckStats:
    try:
        return service.deck_stats(user_id, deck_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@app.get("/v1/stats", response_model=UserStats)
def user_stats(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> UserStats:
    return service.user_stats(user_id)


@app.get("/v1/stats/weekly", response_model=WeeklyProgressResponse)
def weekly_progress(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> WeeklyProgressResponse:
    return WeeklyProgressResponse(weekly_progress=service.weekly_progress(user_id))


@app.get("/v1/history", response_model=List[HistoryEntry])
def learning_history(
    deck_id: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> List[HistoryEntry]:
    return service.learning_history(user_id, deck_id=deck_id, limit=limit)


@app.get("/v1/history/stats", response_model=LearningStats)
def learning_stats(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> LearningStats:
    return service.learning_stats(user_id)


@app.post("/v1/analytics", response_model=AnalyticsListResponse)
def generate_analytics(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> AnalyticsListResponse:
    try:
        rows = service.generate_analytics(user_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return AnalyticsListResponse(message="Analytics generated successfully", analytics=rows)


@app.post("/v1/analytics/auto", response_model=AnalyticsListResponse)
def auto_generate_analytics(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> AnalyticsListResponse:
    try:
        rows = service.auto_generate_analytics(user_id)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    if rows is None:
        return AnalyticsListResponse(
            message="No recent activity found, analytics not updated", analytics=[]
        )
    return AnalyticsListResponse(message="Analytics generated successfully", analytics=rows)


@app.get("/v1/analytics", response_model=AnalyticsListResponse)
def list_analytics(
    user_id: str = Depends(get_user_id), service: StudyService = Depends(get_study_service)
) -> AnalyticsListResponse:
    rows = service.list_analytics(user_id)
    message = "Analytics retrieved successfully" if rows else "No analytics data found"
    return AnalyticsListResponse(message=message, analytics=rows)


@app.get("/v1/analytics/{category}", response_model=CategoryAnalyticsResponse)
def category_analytics(
    category: str,
    user_id: str = Depends(get_user_id),
    service: StudyService = Depends(get_study_service),
) -> CategoryAnalyticsResponse:
    try:
        return service.get_category_analytics(user_id, category)
    except DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


__all__ = ["app"]
