"""
Exception hierarchy for agent-recall.

Collaborator failures (the embedding model, the SQLite file) are wrapped
once at the collaborator boundary and then propagate unchanged through
``MemoryStore``.  Gate rejections are *not* errors; they are returned as
ordinary ``False`` decisions.
"""

from __future__ import annotations


class AgentRecallError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AgentRecallError, ValueError):
    """Invalid or missing storage path, provider or threshold configuration."""


class EmbeddingFailure(AgentRecallError):
    """The embedding provider failed or returned a malformed vector."""


class StorageFailure(AgentRecallError):
    """The persistence layer raised an I/O or database error."""


class MetadataError(AgentRecallError, TypeError):
    """Metadata contains keys or values that cannot be serialised."""


class StoreClosedError(AgentRecallError, RuntimeError):
    """An operation was attempted on a closed ``MemoryStore``."""
