"""Generative text collaborator and AI assisted card creation."""
from __future__ import annotations

import json
import logging
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from huggingface_hub import InferenceClient

from .errors import UpstreamUnavailableError
from .metrics import METRICS


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "mistralai/Mixtral-8x7B-Instruct-v0.1"
CARD_TYPES = ("factual", "fill-in-the-blank", "true-false", "contextual")
MAX_GENERATED_CARDS = 20
JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")


class TextGenerator(ABC):
    """Boundary to an external generative text service."""

    @abstractmethod
    def generate_text(self, prompt: str, max_tokens: int = 100, temperature: float = 0.7) -> str:
        """Return generated text or raise ``UpstreamUnavailableError``."""


class HuggingFaceTextGenerator(TextGenerator):
    """Text generation through the Hugging Face Inference API."""

    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL, timeout: float = 10.0) -> None:
        if not api_key or not api_key.startswith("hf_"):
            raise ValueError("Hugging Face API key must start with 'hf_'")
        self.model_name = model_name
        self._client = InferenceClient(model=model_name, token=api_key, timeout=timeout)

    def generate_text(self, prompt: str, max_tokens: int = 100, temperature: float = 0.7) -> str:
        try:
            output = self._client.text_generation(
                prompt,
                max_new_tokens=max_tokens,
                temperature=temperature,
                return_full_text=False,
            )
        except Exception as exc:
            raise UpstreamUnavailableError(f"{self.model_name} generation failed: {exc}") from exc
        if not isinstance(output, str) or not output.strip():
            raise UpstreamUnavailableError(f"{self.model_name} returned an empty response")
        return output


@dataclass
class GeneratedCard:
    question: str
    answer: str
    type: str
    difficulty: int


def _clamp_difficulty(value) -> int:
    try:
        difficulty = int(value)
    except (TypeError, ValueError):
        difficulty = 3
    return max(1, min(5, difficulty))


def _normalize_type(value) -> str:
    cleaned = re.sub(r"[^a-z-]", "", str(value or "general").lower())
    return cleaned or "general"


def parse_generated_cards(text: str, count: int) -> List[GeneratedCard]:
    """Parse a model response holding a JSON array of question/answer objects."""

    try:
        parsed = json.loads(text)
    except ValueError:
        match = JSON_ARRAY_PATTERN.search(text)
        if not match:
            raise ValueError("No JSON array found in generated text") from None
        parsed = json.loads(match.group(0))
    if isinstance(parsed, dict):
        parsed = parsed.get("flashcards") or parsed.get("results") or []
    if not isinstance(parsed, list):
        raise ValueError("Generated payload is not a list")

    cards: List[GeneratedCard] = []
    for item in parsed[:count]:
        if not isinstance(item, dict):
            continue
        question = str(item.get("question") or "").strip()
        answer = str(item.get("answer") or "").strip()
        if not question or not answer:
            continue
        cards.append(
            GeneratedCard(
                question=question,
                answer=answer,
                type=_normalize_type(item.get("type")),
                difficulty=_clamp_difficulty(item.get("difficulty")),
            )
        )
    return cards


def template_cards(text: str, count: int, rng: Optional[random.Random] = None) -> List[GeneratedCard]:
    """Build cards from the sentences of ``text`` without any model."""

    rng = rng or random.Random()
    sentences = [s.strip() for s in SENTENCE_SPLIT_PATTERN.split(text) if s.strip()]
    if not sentences:
        return []

    cards: List[GeneratedCard] = []
    for index in range(count):
        sentence = sentences[index % len(sentences)]
        card_type = CARD_TYPES[index % len(CARD_TYPES)]
        if card_type == "factual":
            cards.append(GeneratedCard(f'What is true about: "{sentence}"?', sentence, card_type, 2))
        elif card_type == "fill-in-the-blank":
            words = sentence.split()
            position = rng.randrange(len(words))
            word = words[position]
            words[position] = "_____"
            cards.append(GeneratedCard(" ".join(words), word, card_type, 3))
        elif card_type == "true-false":
            cards.append(GeneratedCard(f'Is this statement true: "{sentence}"?', "True", card_type, 1))
        else:
            cards.append(
                GeneratedCard(
                    f'Why is this statement important: "{sentence}"?',
                    f"This statement highlights a key characteristic: {sentence}",
                    card_type,
                    4,
                )
            )
    return cards


class CardGenerator:
    """Turns free text into question/answer pairs."""

    def __init__(self, generator: Optional[TextGenerator] = None, rng: Optional[random.Random] = None) -> None:
        self._generator = generator
        self._rng = rng or random.Random()

    def generate_cards(self, text: str, count: int) -> List[GeneratedCard]:
        if not self._generator:
            return template_cards(text, count, self._rng)

        prompt = (
            f'Generate exactly {count} question-answer pairs from this text: "{text}".\n'
            "Return a valid JSON array with objects containing: question (string), answer (string), "
            "type (factual, fill-in-the-blank, true-false, or contextual), and difficulty (1-5).\n"
            'Example: [{"question":"What is X?","answer":"X is Y","type":"factual","difficulty":1}]'
        )
        try:
            raw = self._generator.generate_text(prompt, max_tokens=3000, temperature=0.7)
            cards = parse_generated_cards(raw, count)
        except (UpstreamUnavailableError, ValueError) as exc:
            logger.warning("Card generation fell back to templates: %s", exc)
            METRICS.record_card_generation_fallback()
            return template_cards(text, count, self._rng)
        if not cards:
            logger.warning("Card generation returned no usable cards, using templates")
            METRICS.record_card_generation_fallback()
            return template_cards(text, count, self._rng)
        return cards


__all__ = [
    "CardGenerator",
    "GeneratedCard",
    "HuggingFaceTextGenerator",
    "MAX_GENERATED_CARDS",
    "TextGenerator",
    "parse_generated_cards",
    "template_cards",
]
