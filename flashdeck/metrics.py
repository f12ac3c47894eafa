"""Simple in-process metrics registry for service instrumentation."""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import DefaultDict, List


@dataclass
class MetricsRegistry:
    """Holds counters and histograms exposed by the application."""

    distractor_attempts: int = 0
    distractor_successes: int = 0
    distractor_failures: int = 0
    distractor_failure_reasons: Counter = field(default_factory=Counter)
    quiz_question_counts: List[int] = field(default_factory=list)
    answer_positions: DefaultDict[str, Counter] = field(default_factory=lambda: defaultdict(Counter))
    review_outcomes: Counter = field(default_factory=Counter)
    card_generation_fallbacks: int = 0

    def record_distractor_attempt(self) -> None:
        self.distractor_attempts += 1

    def record_distractor_success(self) -> None:
        self.distractor_successes += 1

    def record_distractor_failure(self, reason: str) -> None:
        self.distractor_failures += 1
        self.distractor_failure_reasons[reason] += 1

    def record_quiz(self, question_count: int) -> None:
        self.quiz_question_counts.append(question_count)

    def record_answer_position(self, deck_id: str, position: int) -> None:
        self.answer_positions[deck_id][position] += 1

    def record_review_outcome(self, quality: int, interval_days: int) -> None:
        self.review_outcomes[(quality, interval_days)] += 1

    def record_card_generation_fallback(self) -> None:
        self.card_generation_fallbacks += 1

    @property
    def distractor_success_rate(self) -> float:
        if self.distractor_attempts == 0:
            return 0.0
        return self.distractor_successes / self.distractor_attempts


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
