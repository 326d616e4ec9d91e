"""Tests for the SQLite storage and its FTS5 lexical mirror."""

from __future__ import annotations

import sqlite3

import numpy as np
import pytest

from agent_recall.errors import ConfigurationError, StorageFailure
from agent_recall.models import MemoryEntry
from agent_recall.storage import SQLiteStorage, build_match_query


def _entry(entry_id: str, content: str, **kwargs) -> MemoryEntry:
    kwargs.setdefault("embedding", [1.0, 0.0])
    kwargs.setdefault("created_at", "2026-01-01T00:00:00+00:00")
    return MemoryEntry(id=entry_id, content=content, **kwargs)


def _fts_ids(storage: SQLiteStorage) -> list[str]:
    rows = storage._conn.execute("SELECT id FROM memories_fts ORDER BY rowid").fetchall()
    return [row["id"] for row in rows]


class TestBuildMatchQuery:
    def test_tokens_are_quoted_and_ored(self):
        assert build_match_query("dark mode") == '"dark" OR "mode"'

    def test_fts_syntax_is_neutralised(self):
        assert build_match_query('what\'s "NEAR(x" AND y*') == (
            '"what" OR "s" OR "NEAR" OR "x" OR "AND" OR "y"'
        )

    def test_no_tokens(self):
        assert build_match_query("  ?!  ") is None


class TestSQLiteStorage:
    def test_initial_count_is_zero(self, storage: SQLiteStorage):
        assert storage.count() == 0

    def test_insert_and_get(self, storage: SQLiteStorage):
        storage.insert(_entry("id1", "Hello world", metadata={"key": "val"}))
        entry = storage.get("id1")
        assert entry is not None
        assert entry.content == "Hello world"
        assert entry.metadata == {"key": "val"}
        assert entry.embedding == [1.0, 0.0]
        assert entry.score is None

    def test_get_missing(self, storage: SQLiteStorage):
        assert storage.get("nope") is None

    def test_insert_mirrors_into_fts(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "alpha"))
        storage.insert(_entry("b", "beta"))
        assert _fts_ids(storage) == ["a", "b"]

    def test_delete_removes_from_both(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "alpha"))
        assert storage.delete("a") is True
        assert storage.count() == 0
        assert _fts_ids(storage) == []
        assert storage.lexical_search("alpha") == []

    def test_delete_missing_returns_false(self, storage: SQLiteStorage):
        assert storage.delete("ghost") is False

    def test_duplicate_id_fails_without_partial_write(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "alpha"))
        with pytest.raises(StorageFailure):
            storage.insert(_entry("a", "different text"))
        assert storage.count() == 1
        assert _fts_ids(storage) == ["a"]
        assert storage.lexical_search("different") == []

    def test_all_entries_in_insertion_order(self, storage: SQLiteStorage):
        for name in ["z", "a", "m"]:
            storage.insert(_entry(name, f"entry {name}"))
        assert [e.id for e in storage.all_entries()] == ["z", "a", "m"]

    def test_entry_without_embedding(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "no vector here", embedding=None))
        assert storage.get("a").embedding is None
        assert [e.id for e, _ in storage.lexical_search("vector")] == ["a"]

    def test_embedding_is_stored_as_float32_blob(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "blob", embedding=[0.5, -0.25]))
        raw = storage._conn.execute("SELECT embedding FROM memories").fetchone()[0]
        assert isinstance(raw, bytes)
        assert len(raw) == 2 * 4
        assert storage.get("a").embedding == [0.5, -0.25]

    def test_vector_corpus(self, storage: SQLiteStorage):
        storage.insert(_entry("z", "first", embedding=[0.0, 1.0]))
        storage.insert(_entry("a", "second", embedding=None))
        storage.insert(_entry("m", "third", embedding=[2.0, 0.5]))
        ids, matrix = storage.vector_corpus(2)
        assert ids == ["z", "a", "m"]
        assert matrix.dtype == np.float32
        assert matrix.tolist() == [[0.0, 1.0], [0.0, 0.0], [2.0, 0.5]]

    def test_vector_corpus_empty(self, storage: SQLiteStorage):
        ids, matrix = storage.vector_corpus(3)
        assert ids == []
        assert matrix.shape == (0, 3)

    def test_vector_corpus_dimension_mismatch(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "two dims"))
        with pytest.raises(StorageFailure, match="3-dim"):
            storage.vector_corpus(3)

    def test_get_many(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "alpha"))
        storage.insert(_entry("b", "beta"))
        found = storage.get_many(["b", "missing", "a"])
        assert sorted(found) == ["a", "b"]
        assert found["b"].content == "beta"
        assert storage.get_many([]) == {}

    def test_lexical_search_ranks_better_match_first(self, storage: SQLiteStorage):
        storage.insert(_entry("weak", "coffee and many other unrelated words in a long sentence"))
        storage.insert(_entry("strong", "coffee coffee coffee"))
        storage.insert(_entry("none", "tea only"))
        hits = storage.lexical_search("coffee")
        assert [e.id for e, _ in hits] == ["strong", "weak"]
        assert hits[0][1] >= hits[1][1]

    def test_lexical_search_is_case_insensitive(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "Security review"))
        assert [e.id for e, _ in storage.lexical_search("SECURITY")] == ["a"]

    def test_lexical_search_matches_any_term(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "dark theme"))
        storage.insert(_entry("b", "light mode"))
        ids = {e.id for e, _ in storage.lexical_search("dark mode")}
        assert ids == {"a", "b"}

    def test_lexical_search_limit(self, storage: SQLiteStorage):
        for i in range(5):
            storage.insert(_entry(str(i), f"note number {i}"))
        assert len(storage.lexical_search("note", limit=3)) == 3
        assert storage.lexical_search("note", limit=0) == []

    def test_lexical_search_with_punctuation_only(self, storage: SQLiteStorage):
        storage.insert(_entry("a", "anything"))
        assert storage.lexical_search("???") == []

    def test_meta_roundtrip(self, storage: SQLiteStorage):
        assert storage.get_meta("embedding_dim") is None
        storage.set_meta("embedding_dim", "384")
        assert storage.get_meta("embedding_dim") == "384"

    def test_operations_after_close_fail(self, storage: SQLiteStorage):
        storage.close()
        with pytest.raises(StorageFailure):
            storage.count()
        storage.close()  # idempotent

    def test_sqlite_errors_become_storage_failures(self, storage: SQLiteStorage):
        storage._conn.execute("DROP TABLE memories_fts")
        with pytest.raises(StorageFailure) as excinfo:
            storage.lexical_search("anything")
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)


class TestOpen:
    def test_empty_path_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            SQLiteStorage.open("")

    def test_creates_parent_directory_and_persists(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "memory.db"
        storage = SQLiteStorage.open(str(path))
        storage.insert(_entry("a", "persisted across reopen"))
        storage.close()

        reopened = SQLiteStorage.open(str(path))
        try:
            assert reopened.get("a").content == "persisted across reopen"
            assert [e.id for e, _ in reopened.lexical_search("reopen")] == ["a"]
        finally:
            reopened.close()
