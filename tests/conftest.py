import random
from datetime import datetime

import pytest

from flashdeck.domain import Card, Deck
from flashdeck.errors import UpstreamUnavailableError
from flashdeck.generation import TextGenerator
from flashdeck.services import StudyService
from flashdeck.storage import InMemoryRepository, SqliteStudyRepository

# A Wednesday, so the trailing week crosses a Monday boundary.
NOW = datetime(2024, 5, 15, 12, 0, 0)


class FakeTextGenerator(TextGenerator):
    """Returns canned output, or raises when ``output`` is None."""

    def __init__(self, output=None, error=None):
        self.output = output
        self.error = error
        self.prompts = []

    def generate_text(self, prompt, max_tokens=100, temperature=0.7):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.output is None:
            raise UpstreamUnavailableError("service unavailable")
        return self.output


def make_deck(owner_id="alice", answers=("Paris", "Berlin", "Madrid", "Rome", "Lisbon"), **kwargs):
    deck = Deck(owner_id=owner_id, name=kwargs.pop("name", "Capitals"), **kwargs)
    deck.cards = [
        Card(
            deck_id=deck.id,
            question=f"Capital number {index}?",
            answer=answer,
            tags={f"tag{index}"},
        )
        for index, answer in enumerate(answers)
    ]
    return deck


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def sqlite_repository(tmp_path):
    repo = SqliteStudyRepository(tmp_path / "flashdeck.db")
    yield repo
    repo.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_repository(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRepository()
        return
    repo = SqliteStudyRepository(tmp_path / "flashdeck.db")
    yield repo
    repo.close()


@pytest.fixture
def deck(repository):
    deck = make_deck()
    repository.save_deck(deck)
    return deck


@pytest.fixture
def service(repository, rng):
    return StudyService(repository, rng=rng, clock=lambda: NOW)
