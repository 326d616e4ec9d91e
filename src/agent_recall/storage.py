"""
SQLite persistence with an FTS5 lexical index.

The ``memories`` table is the primary store.  ``memories_fts`` is kept in
step with it by triggers that run inside the writing transaction, so a
reader never sees a row in one and not the other.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import numpy as np

from .errors import ConfigurationError, StorageFailure
from .models import MemoryEntry
from .vectors import VECTOR_DTYPE

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    metadata TEXT,
    embedding BLOB,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS store_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE VIRTUAL TABLE IF NOT EXISTS memories_fts USING fts5(
    content,
    id UNINDEXED
);

CREATE TRIGGER IF NOT EXISTS memories_ai AFTER INSERT ON memories BEGIN
    INSERT INTO memories_fts (id, content) VALUES (new.id, new.content);
END;

CREATE TRIGGER IF NOT EXISTS memories_ad AFTER DELETE ON memories BEGIN
    DELETE FROM memories_fts WHERE id = old.id;
END;

CREATE TRIGGER IF NOT EXISTS memories_au AFTER UPDATE ON memories BEGIN
    DELETE FROM memories_fts WHERE id = old.id;
    INSERT INTO memories_fts (id, content) VALUES (new.id, new.content);
END;
"""

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def build_match_query(query: str) -> str | None:
    """
    Turn free text into an FTS5 MATCH expression.

    Each word token is double-quoted and the tokens are OR-ed, so user input
    never reaches FTS5 query syntax.  Returns ``None`` when *query* holds no
    word tokens.
    """
    tokens = _TOKEN_RE.findall(query)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


class SQLiteStorage:
    """
    Thread-safe SQLite document store with full-text search.

    A single connection is shared and every access goes through
    ``self._lock``.  ``sqlite3.Error`` is re-raised as ``StorageFailure``.
    """

    def __init__(self, conn: sqlite3.Connection, path: str) -> None:
        self._conn = conn
        self.path = path
        self._lock = threading.RLock()
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: str) -> SQLiteStorage:
        """Create or open the database at *path* (``":memory:"`` allowed)."""
        if not path or not str(path).strip():
            raise ConfigurationError("storage path must not be empty")
        path = str(path)
        try:
            if path != ":memory:":
                Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                path = str(Path(path).expanduser())
            conn = sqlite3.connect(path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA_SQL)
            conn.commit()
        except OSError as exc:
            raise ConfigurationError(f"cannot create storage at {path!r}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot open storage at {path!r}: {exc}") from exc
        logger.info("Opened memory database %s", path)
        return cls(conn, path)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                raise StorageFailure(f"close failed: {exc}") from exc

    @contextmanager
    def snapshot(self) -> Iterator[SQLiteStorage]:
        """Hold the connection lock across several reads."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Store metadata
    # ------------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        with self._guard():
            row = self._conn.execute(
                "SELECT value FROM store_meta WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._guard(write=True):
            self._conn.execute(
                "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
                (key, value),
            )

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, entry: MemoryEntry) -> None:
        """Insert *entry*; the FTS mirror row is written in the same transaction."""
        with self._guard(write=True):
            self._conn.execute(
                "INSERT INTO memories (id, content, metadata, embedding, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.content,
                    json.dumps(entry.metadata),
                    _pack_embedding(entry.embedding) if entry.embedding is not None else None,
                    entry.created_at,
                ),
            )

    def delete(self, entry_id: str) -> bool:
        """Delete an entry from the primary table and the FTS mirror."""
        with self._guard(write=True):
            cur = self._conn.execute("DELETE FROM memories WHERE id = ?", (entry_id,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> MemoryEntry | None:
        with self._guard():
            row = self._conn.execute(
                "SELECT * FROM memories WHERE id = ?", (entry_id,)
            ).fetchone()
        return _hydrate(row) if row else None

    def all_entries(self) -> list[MemoryEntry]:
        """Every stored entry, in insertion order."""
        with self._guard():
            rows = self._conn.execute("SELECT * FROM memories ORDER BY rowid").fetchall()
        return [_hydrate(row) for row in rows]

    def get_many(self, entry_ids: list[str]) -> dict[str, MemoryEntry]:
        """Entries for *entry_ids* keyed by ID; unknown IDs are left out."""
        if not entry_ids:
            return {}
        placeholders = ",".join("?" * len(entry_ids))
        with self._guard():
            rows = self._conn.execute(
                f"SELECT * FROM memories WHERE id IN ({placeholders})", entry_ids
            ).fetchall()
        return {row["id"]: _hydrate(row) for row in rows}

    def vector_corpus(self, dimension: int) -> tuple[list[str], np.ndarray]:
        """
        Every entry ID with its embedding, in insertion order.

        Returns the IDs and an ``(n, dimension)`` float32 matrix built from
        the stored blobs without decoding each row into Python floats.
        Entries stored without an embedding get a zero row.
        """
        with self._guard():
            rows = self._conn.execute(
                "SELECT id, embedding FROM memories ORDER BY rowid"
            ).fetchall()
        ids = [row["id"] for row in rows]
        zero = bytes(dimension * np.dtype(VECTOR_DTYPE).itemsize)
        blob = b"".join(row["embedding"] or zero for row in rows)
        try:
            matrix = np.frombuffer(blob, dtype=VECTOR_DTYPE).reshape(len(ids), dimension)
        except ValueError as exc:
            raise StorageFailure(f"stored embeddings are not {dimension}-dim: {exc}") from exc
        return ids, matrix

    def lexical_search(self, query: str, limit: int = 10) -> list[tuple[MemoryEntry, float]]:
        """
        BM25-ranked full-text search.

        SQLite's ``bm25()`` is lower-is-better, so the returned score is its
        negation: higher means more relevant, and results are sorted by
        descending score.
        """
        match = build_match_query(query)
        if match is None or limit <= 0:
            return []
        with self._guard():
            rows = self._conn.execute(
                """
                SELECT m.*, bm25(memories_fts) AS bm25_score
                FROM memories_fts
                JOIN memories m ON memories_fts.id = m.id
                WHERE memories_fts MATCH ?
                ORDER BY bm25_score ASC, m.rowid ASC
                LIMIT ?
                """,
                (match, limit),
            ).fetchall()
        return [(_hydrate(row), -float(row["bm25_score"])) for row in rows]

    def count(self) -> int:
        with self._guard():
            row = self._conn.execute("SELECT COUNT(*) AS total FROM memories").fetchone()
        return int(row["total"])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, write: bool = False) -> Iterator[None]:
        with self._lock:
            if self._closed:
                raise StorageFailure("storage is closed")
            try:
                yield
                if write:
                    self._conn.commit()
            except sqlite3.Error as exc:
                if write:
                    self._conn.rollback()
                raise StorageFailure(str(exc)) from exc


def _pack_embedding(embedding: list[float]) -> bytes:
    """Pack an embedding as a float32 blob."""
    return np.asarray(embedding, dtype=VECTOR_DTYPE).tobytes()


def _unpack_embedding(blob: bytes) -> list[float]:
    return np.frombuffer(blob, dtype=VECTOR_DTYPE).astype(float).tolist()


def _hydrate(row: sqlite3.Row) -> MemoryEntry:
    raw_embedding = row["embedding"]
    return MemoryEntry(
        id=row["id"],
        content=row["content"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        embedding=_unpack_embedding(raw_embedding) if raw_embedding else None,
        created_at=row["created_at"],
    )
