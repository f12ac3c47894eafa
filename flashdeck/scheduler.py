"""SM-2 derived review scheduling."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .domain import MIN_EASE_FACTOR, ReviewState


BASE_CORRECT_QUALITY = 4
FAST_RESPONSE_MS = 5000
SLOW_RESPONSE_MS = 15000
MAX_QUALITY = 5
SECOND_INTERVAL_DAYS = 6


class IntervalPolicy(str, Enum):
    """How a correct answer moves the review interval."""

    IMMEDIATE = "immediate"
    GEOMETRIC = "geometric"


@dataclass
class SchedulerConfig:
    interval_policy: IntervalPolicy = IntervalPolicy.IMMEDIATE


def quality_score(correct: bool, response_time_ms: Optional[int] = None) -> int:
    """Map an answer outcome to an SM-2 quality rating between 0 and 5."""

    if not correct:
        return 0
    quality = BASE_CORRECT_QUALITY
    if response_time_ms:
        if response_time_ms < FAST_RESPONSE_MS:
            quality += 1
        elif response_time_ms >= SLOW_RESPONSE_MS:
            quality -= 1
    return max(0, min(MAX_QUALITY, quality))


def update_ease_factor(ease_factor: float, quality: int) -> float:
    penalty = MAX_QUALITY - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - penalty * (0.08 + penalty * 0.02)))


class ReviewScheduler:
    """Computes the next review state of a card after an attempt."""

    def __init__(self, config: Optional[SchedulerConfig] = None) -> None:
        self._config = config or SchedulerConfig()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    def next_state(
        self,
        prior: ReviewState,
        correct: bool,
        response_time_ms: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ReviewState:
        """Return the scheduling fields for the next review.

        Attempt counters are carried over unchanged; callers bump them with
        ``ReviewState.with_attempt`` once the attempt is persisted.
        """

        now = now or datetime.utcnow()
        quality = quality_score(correct, response_time_ms)
        ease_factor = update_ease_factor(prior.ease_factor, quality)

        if not correct:
            repetitions, interval = 0, 1
        elif self._config.interval_policy is IntervalPolicy.GEOMETRIC:
            repetitions, interval = self._geometric_step(prior)
        else:
            repetitions, interval = 1, 1

        return ReviewState(
            ease_factor=ease_factor,
            interval=interval,
            repetitions=repetitions,
            next_review_at=now + timedelta(days=interval),
            last_reviewed_at=now,
            is_mastered=correct,
            total_attempts=prior.total_attempts,
            correct_attempts=prior.correct_attempts,
        )

    @staticmethod
    def _geometric_step(prior: ReviewState) -> tuple:
        if prior.repetitions == 0:
            interval = 1
        elif prior.repetitions == 1:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = max(1, round(prior.interval * prior.ease_factor))
        return prior.repetitions + 1, interval


__all__ = [
    "IntervalPolicy",
    "ReviewScheduler",
    "SchedulerConfig",
    "quality_score",
    "update_ease_factor",
]
