"""
MemoryStore: high-level API for storing, searching and gating memories.

This is the main entry-point for agents that want to persist durable
facts across sessions.

Usage example::

    from agent_recall import MemoryStore

    with MemoryStore(db_path="./agent-memory.db") as memory:
        should_remember = memory.should_create_memory()

        text = "User is allergic to nuts, remember for all food orders"
        if should_remember(text):
            memory.add(text, {"topic": "personal"})

        for entry in memory.search_hybrid("food allergies", limit=3):
            print(entry.score, entry.content)
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Sequence

from .config import Settings
from .embeddings import DEFAULT_MODEL, EmbeddingProvider
from .errors import ConfigurationError, StoreClosedError
from .gate import (
    DEFAULT_GAP_THRESHOLD,
    DEFAULT_MAX_CHARS,
    DEFAULT_MIN_CHARS,
    DEFAULT_NOVELTY_THRESHOLD,
    NEGATIVE_PROTOTYPES,
    POSITIVE_PROTOTYPES,
    MemoryGate,
    PrototypeSet,
)
from .models import MemoryEntry, generate_id, utc_timestamp, validate_metadata
from .ranking import reciprocal_rank_fusion
from .storage import SQLiteStorage
from .vectors import VectorIndex

logger = logging.getLogger(__name__)

#: Candidates fetched from each list before rank fusion.
HYBRID_POOL: int = 30


class MemoryStore:
    """
    Persistent agent memory with lexical, semantic and fused search.

    Responsibilities
    ----------------
    * **Add** – Embeds content and persists it together with its metadata.
      The FTS5 lexical index is updated in the same transaction.
    * **Search** – BM25 full-text search, exhaustive cosine search, and a
      hybrid of the two fused with Reciprocal Rank Fusion.
    * **Gate** – ``should_create_memory`` returns a reusable predicate that
      decides whether content is durable and novel enough to store.

    Parameters
    ----------
    db_path:
        SQLite database file, or ``":memory:"``.
    embedding_model, device, cache_folder, dtype:
        Passed to ``EmbeddingProvider`` when ``_embedder`` is not given.
    positive_prototypes, negative_prototypes:
        Phrase lists anchoring the gate's importance test.
    hybrid_pool:
        Number of candidates taken from each ranked list in hybrid search.
    """

    def __init__(
        self,
        db_path: str = "./agent-memory.db",
        embedding_model: str = DEFAULT_MODEL,
        device: str = "cpu",
        cache_folder: str | None = None,
        dtype: str | None = None,
        positive_prototypes: Sequence[str] = POSITIVE_PROTOTYPES,
        negative_prototypes: Sequence[str] = NEGATIVE_PROTOTYPES,
        hybrid_pool: int = HYBRID_POOL,
        _storage: SQLiteStorage | None = None,
        _embedder: EmbeddingProvider | None = None,
    ) -> None:
        self._embedder = _embedder or EmbeddingProvider(
            model_name=embedding_model,
            device=device,
            cache_folder=cache_folder,
            dtype=dtype,
        )
        self._storage = _storage or SQLiteStorage.open(db_path)
        self._positive_phrases = tuple(positive_prototypes)
        self._negative_phrases = tuple(negative_prototypes)
        self.hybrid_pool = hybrid_pool

        self._prototypes: PrototypeSet | None = None
        self._prototype_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._last_created: datetime | None = None
        self._closed = False

        self._check_dimension()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> MemoryStore:
        return cls(
            db_path=settings.db_path,
            embedding_model=settings.model,
            device=settings.device,
            cache_folder=settings.cache_dir,
            dtype=settings.dtype,
            **kwargs,
        )

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, content: str, metadata: dict[str, Any] | None = None) -> str:
        """
        Embed and persist *content*, returning the new memory ID.

        The embedding is computed before storage is touched, so a provider
        failure leaves the store unchanged.
        """
        self._ensure_open()
        meta = validate_metadata(metadata)
        embedding = self._embedder.embed(content)

        with self._write_lock:
            entry = MemoryEntry(
                id=generate_id(),
                content=content,
                metadata=meta,
                embedding=embedding,
                created_at=self._next_timestamp(),
            )
            self._storage.insert(entry)
        logger.debug("Stored memory %s (%d chars)", entry.id, len(content))
        return entry.id

    def get(self, memory_id: str) -> MemoryEntry | None:
        self._ensure_open()
        return self._storage.get(memory_id)

    def delete(self, memory_id: str) -> bool:
        """Delete a memory by its ID.  Returns ``False`` if it did not exist."""
        self._ensure_open()
        return self._storage.delete(memory_id)

    def search_lexical(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        """BM25 full-text search; ``score`` is the (negated) bm25 value."""
        self._ensure_open()
        hits = self._storage.lexical_search(query, limit)
        logger.debug("Lexical search %r: %d hits", query, len(hits))
        return [entry.with_score(score) for entry, score in hits]

    def search_vector(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        """Cosine-similarity search over every stored embedding."""
        self._ensure_open()
        if limit <= 0:
            return []
        vector = self._embedder.embed(query)
        ids, matrix = self._storage.vector_corpus(self._embedder.dimension)
        return self._hydrate_ranked(VectorIndex.rank(vector, ids, matrix, limit))

    def search_hybrid(self, query: str, limit: int = 10) -> list[MemoryEntry]:
        """
        Lexical and vector search fused with Reciprocal Rank Fusion.

        ``score`` on each result is the fused RRF score.  Both candidate
        lists are read from the same corpus state; only the reads hold the
        storage lock, vector scoring runs after it is released.
        """
        self._ensure_open()
        if limit <= 0:
            return []
        pool = max(limit, self.hybrid_pool)
        vector = self._embedder.embed(query)

        with self._storage.snapshot() as storage:
            lexical = [entry for entry, _ in storage.lexical_search(query, pool)]
            ids, matrix = storage.vector_corpus(self._embedder.dimension)
        semantic = self._hydrate_ranked(VectorIndex.rank(vector, ids, matrix, pool))

        by_id = {entry.id: entry for entry in semantic}
        by_id.update((entry.id, entry) for entry in lexical)
        fused = reciprocal_rank_fusion(
            [[e.id for e in lexical], [e.id for e in semantic]],
            limit=limit,
        )
        logger.debug(
            "Hybrid search %r: %d lexical, %d vector, %d fused",
            query,
            len(lexical),
            len(semantic),
            len(fused),
        )
        return [by_id[memory_id].with_score(score) for memory_id, score in fused]

    def nearest_similarity(self, vector: Sequence[float]) -> float:
        """Best cosine similarity of *vector* against the corpus (0.0 if empty)."""
        self._ensure_open()
        ids, matrix = self._storage.vector_corpus(self._embedder.dimension)
        best = VectorIndex.rank(vector, ids, matrix, 1)
        return best[0][1] if best else 0.0

    def should_create_memory(
        self,
        gap_threshold: float = DEFAULT_GAP_THRESHOLD,
        novelty_threshold: float = DEFAULT_NOVELTY_THRESHOLD,
        min_chars: int = DEFAULT_MIN_CHARS,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> MemoryGate:
        """
        Return a reusable gate predicate for the given thresholds.

        The prototype embeddings are built on the first call and shared by
        every gate this store hands out.
        """
        self._ensure_open()
        return MemoryGate(
            embedder=self._embedder,
            prototypes=self.prototypes(),
            nearest_similarity=self.nearest_similarity,
            gap_threshold=gap_threshold,
            novelty_threshold=novelty_threshold,
            min_chars=min_chars,
            max_chars=max_chars,
        )

    def prototypes(self) -> PrototypeSet:
        """The store's ``PrototypeSet``, built exactly once."""
        if self._prototypes is None:
            with self._prototype_lock:
                if self._prototypes is None:
                    self._prototypes = PrototypeSet.build(
                        self._embedder,
                        self._positive_phrases,
                        self._negative_phrases,
                    )
        return self._prototypes

    def stats(self) -> dict[str, Any]:
        self._ensure_open()
        return {
            "total": self._storage.count(),
            "dimension": self._embedder.dimension,
            "model": self._embedder.model_name,
            "db_path": self._storage.path,
        }

    def count(self) -> int:
        """Return the total number of stored memories."""
        self._ensure_open()
        return self._storage.count()

    def close(self) -> None:
        """Release the database.  Further calls (other than close) fail."""
        if self._closed:
            return
        self._closed = True
        self._storage.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("memory store is closed")

    def _hydrate_ranked(self, ranked: list[tuple[str, float]]) -> list[MemoryEntry]:
        # An entry deleted after the corpus was read is dropped.
        entries = self._storage.get_many([memory_id for memory_id, _ in ranked])
        return [
            entries[memory_id].with_score(score)
            for memory_id, score in ranked
            if memory_id in entries
        ]

    def _next_timestamp(self) -> str:
        now = utc_timestamp()
        if self._last_created is not None and now < self._last_created:
            now = self._last_created
        self._last_created = now
        return now.isoformat()

    def _check_dimension(self) -> None:
        """Pin the embedding dimension on first use; refuse a mismatched provider."""
        dim = str(self._embedder.dimension)
        stored = self._storage.get_meta("embedding_dim")
        if stored is None:
            self._storage.set_meta("embedding_dim", dim)
            self._storage.set_meta("embedding_model", self._embedder.model_name)
        elif stored != dim:
            self._storage.close()
            raise ConfigurationError(
                f"store at {self._storage.path} holds {stored}-dim embeddings, "
                f"but the provider produces {dim}-dim vectors"
            )
