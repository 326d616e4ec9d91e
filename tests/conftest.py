"""
Shared pytest fixtures for agent-recall tests.

Uses in-memory SQLite and a deterministic keyword embedding function so
that tests run fast without downloading any ML models, and so that every
similarity in a test can be worked out by hand.
"""

from __future__ import annotations

import math
import re

import pytest

from agent_recall.embeddings import EmbeddingProvider
from agent_recall.memory import MemoryStore
from agent_recall.storage import SQLiteStorage

#: Word -> axis.  Words sharing an axis are "synonyms" for the fake model;
#: words not listed here contribute nothing.
AXES: dict[str, int] = {
    "user": 0,
    "always": 1,
    "never": 2,
    "remember": 3,
    "allergic": 4,
    "nuts": 5,
    "food": 6,
    "prefers": 7,
    "hates": 8,
    "popups": 9,
    "modals": 10,
    "forever": 11,
    "dark": 12,
    "mode": 13,
    "lol": 14,
    "joke": 15,
    "hilarious": 16,
    "haha": 17,
    "funny": 18,
    "weather": 19,
    "today": 20,
    "security": 21,
    "passwords": 21,
    "credentials": 21,
    "rotate": 22,
    "pizza": 23,
    "lunch": 24,
    "python": 25,
    "coffee": 26,
    "sky": 27,
    "blue": 28,
}
DIM = 32

#: Prototype phrases the keyword model can make sense of.
TEST_POSITIVE = (
    "user always remember allergic prefers",
    "user hates never forever",
)
TEST_NEGATIVE = (
    "lol joke hilarious",
    "haha funny",
    "weather today",
)

_WORD_RE = re.compile(r"[a-z]+")


class KeywordEmbeddingFunction:
    """
    Bag-of-keywords embedding: one axis per known word, L2-normalised.

    Text without known words maps to the zero vector.  ``calls`` counts
    invocations so tests can assert how often the "model" ran.
    """

    def __init__(self) -> None:
        self.calls = 0

    def name(self) -> str:
        return "fake-keyword-embedding"

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        self.calls += 1
        return [embed_keywords(text) for text in input]


def embed_keywords(text: str) -> list[float]:
    vec = [0.0] * DIM
    for word in _WORD_RE.findall(text.lower()):
        axis = AXES.get(word)
        if axis is not None:
            vec[axis] += 1.0
    norm = math.sqrt(sum(x * x for x in vec))
    return [x / norm for x in vec] if norm else vec


@pytest.fixture()
def embedding_function() -> KeywordEmbeddingFunction:
    return KeywordEmbeddingFunction()


@pytest.fixture()
def embedder(embedding_function: KeywordEmbeddingFunction) -> EmbeddingProvider:
    return EmbeddingProvider(model_name="fake", _embedding_function=embedding_function)


@pytest.fixture()
def storage() -> SQLiteStorage:
    storage = SQLiteStorage.open(":memory:")
    yield storage
    storage.close()


@pytest.fixture()
def memory_store(storage: SQLiteStorage, embedder: EmbeddingProvider) -> MemoryStore:
    """MemoryStore wired to in-memory SQLite and the keyword embedder."""
    store = MemoryStore(
        positive_prototypes=TEST_POSITIVE,
        negative_prototypes=TEST_NEGATIVE,
        _storage=storage,
        _embedder=embedder,
    )
    yield store
    store.close()
