"""
Data model: the ``MemoryEntry`` record and helpers for ids, timestamps and
metadata validation.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .errors import MetadataError


@dataclass(frozen=True)
class MemoryEntry:
    """
    A single stored memory.

    ``score`` is only populated on entries returned from a search and is
    never persisted.  ``embedding`` is ``None`` for rows written without a
    vector; such rows score zero in vector search but still match lexically.
    """

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = field(default=None, repr=False)
    created_at: str = ""
    score: float | None = None

    def with_score(self, score: float) -> MemoryEntry:
        return replace(self, score=score)

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        """JSON-friendly representation (used by the CLI and MCP tools)."""
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }
        if self.score is not None:
            data["score"] = self.score
        if include_embedding:
            data["embedding"] = self.embedding
        return data


def generate_id() -> str:
    """Return a new unique memory ID."""
    return str(uuid.uuid4())


def utc_timestamp() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Metadata validation
# ---------------------------------------------------------------------------

_SCALARS = (str, int, float, bool, type(None))


def validate_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """
    Return a shallow copy of *metadata* after checking that it only holds
    JSON-serialisable values.

    Allowed values are ``str``, ``int``, ``float`` (finite), ``bool``,
    ``None`` and lists / string-keyed dicts of those, nested to any depth.
    Anything else raises ``MetadataError``.
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise MetadataError(f"metadata must be a dict, got {type(metadata).__name__}")
    _check_value(metadata, "metadata")
    return dict(metadata)


def _check_value(value: Any, path: str) -> None:
    if isinstance(value, float) and not math.isfinite(value):
        raise MetadataError(f"{path}: non-finite float {value!r}")
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_value(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise MetadataError(f"{path}: keys must be strings, got {key!r}")
            _check_value(item, f"{path}.{key}")
        return
    raise MetadataError(f"{path}: unsupported value type {type(value).__name__}")
