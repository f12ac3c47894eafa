"""Wrong-answer generation for multiple-choice questions."""
from __future__ import annotations

import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from .domain import Card
from .errors import UpstreamUnavailableError
from .generation import TextGenerator
from .metrics import METRICS


logger = logging.getLogger(__name__)

ENUMERATION_PATTERN = re.compile(r"^\s*(?:\d+[.)]|[a-dA-D][.)]|[-*•])\s*")
PUNCTUATION_PATTERN = re.compile(r"[\"“”\[\]{}()<>,*]")
PROMPT_ECHO_PATTERN = re.compile(r"^(?:given|generate|here (?:are|is))\b|\b(?:correct answer|distractors?)\b")
GENERIC_OPTIONS = ("None of the above", "Not applicable", "Cannot be determined")


def normalize_answer(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


def clean_candidate(line: str) -> str:
    cleaned = ENUMERATION_PATTERN.sub("", line.strip())
    cleaned = PUNCTUATION_PATTERN.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def clean_candidates(raw: str, correct_answer: str) -> List[str]:
    """Split generated text into usable, de-duplicated distractors."""

    correct = normalize_answer(correct_answer)
    seen = {correct}
    result: List[str] = []
    for line in raw.splitlines():
        candidate = clean_candidate(line)
        key = normalize_answer(candidate)
        if not key or key in seen:
            continue
        if PROMPT_ECHO_PATTERN.search(key):
            continue
        seen.add(key)
        result.append(candidate)
    return result


def pad_with_placeholders(
    candidates: Sequence[str], correct_answer: str, count: int, templates: Iterable[str] = ()
) -> List[str]:
    """Fill ``candidates`` up to ``count`` without repeating any answer.

    ``templates`` are tried first, then ``"Option N"``.
    """

    result = list(candidates[:count])
    taken = {normalize_answer(text) for text in result}
    taken.add(normalize_answer(correct_answer))
    pending = list(templates)
    counter = 0
    while len(result) < count:
        if pending:
            option = pending.pop(0)
        else:
            counter += 1
            option = f"Option {counter}"
        if normalize_answer(option) in taken:
            continue
        taken.add(normalize_answer(option))
        result.append(option)
    return result


class DistractorSource(ABC):
    """Produces exactly ``count`` wrong answers for a question."""

    @abstractmethod
    def generate(self, question: str, correct_answer: str, count: int) -> List[str]:
        """Return ``count`` options that differ from ``correct_answer``."""


class GenerativeDistractorSource(DistractorSource):
    """Asks a generative model for distractors and degrades to placeholders."""

    def __init__(self, generator: TextGenerator, max_tokens: int = 100, temperature: float = 0.7) -> None:
        self._generator = generator
        self._max_tokens = max_tokens
        self._temperature = temperature

    @staticmethod
    def build_prompt(question: str, correct_answer: str, count: int) -> str:
        return (
            f'Given the question: "{question}"\n'
            f'and the correct answer: "{correct_answer}"\n'
            f"Generate {count} plausible but incorrect distractors for a multiple-choice quiz.\n"
            "Format the output as a list, one distractor per line, without numbers, quotes, "
            "brackets, or any symbols like *."
        )

    def generate(self, question: str, correct_answer: str, count: int) -> List[str]:
        if count <= 0:
            return []
        METRICS.record_distractor_attempt()
        prompt = self.build_prompt(question, correct_answer, count)
        try:
            raw = self._generator.generate_text(
                prompt, max_tokens=self._max_tokens, temperature=self._temperature
            )
        except UpstreamUnavailableError as exc:
            logger.warning("Distractor generation failed, using fallback options: %s", exc)
            METRICS.record_distractor_failure("upstream_unavailable")
            return pad_with_placeholders([], correct_answer, count)
        except Exception as exc:  # generators outside this package may raise anything
            logger.exception("Unexpected distractor generator error: %s", exc)
            METRICS.record_distractor_failure(type(exc).__name__)
            return pad_with_placeholders([], correct_answer, count)

        if not isinstance(raw, str):
            METRICS.record_distractor_failure("malformed_response")
            return pad_with_placeholders([], correct_answer, count)

        candidates = clean_candidates(raw, correct_answer)
        METRICS.record_distractor_success()
        variants = [f"Varian {index}" for index in range(len(candidates[:count]) + 1, count + 1)]
        return pad_with_placeholders(candidates, correct_answer, count, templates=variants)


class DeckDistractorSource(DistractorSource):
    """Uses answers of the other cards in the same deck as distractors."""

    def __init__(self, cards: Sequence[Card], rng: Optional[random.Random] = None) -> None:
        self._answers = [card.answer for card in cards]
        self._rng = rng or random.Random()

    def generate(self, question: str, correct_answer: str, count: int) -> List[str]:
        if count <= 0:
            return []
        correct = normalize_answer(correct_answer)
        seen = {correct}
        eligible: List[str] = []
        for answer in self._answers:
            key = normalize_answer(answer)
            if not key or key in seen:
                continue
            seen.add(key)
            eligible.append(answer)

        if len(eligible) >= count:
            return self._rng.sample(eligible, count)
        return pad_with_placeholders(eligible, correct_answer, count, templates=GENERIC_OPTIONS)


__all__ = [
    "DeckDistractorSource",
    "DistractorSource",
    "GENERIC_OPTIONS",
    "GenerativeDistractorSource",
    "clean_candidates",
    "normalize_answer",
    "pad_with_placeholders",
]
