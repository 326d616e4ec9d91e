"""
agent-recall: persistent, self-gating memory for conversational agents.

Stores short text memories with embeddings in SQLite, retrieves them by
BM25, cosine similarity or a rank fusion of both, and decides on its own
whether new content is durable and novel enough to keep.
"""

from .embeddings import EmbeddingProvider
from .errors import (
    AgentRecallError,
    ConfigurationError,
    EmbeddingFailure,
    MetadataError,
    StorageFailure,
    StoreClosedError,
)
from .gate import GateDecision, MemoryGate, PrototypeSet
from .memory import MemoryStore
from .models import MemoryEntry
from .ranking import reciprocal_rank_fusion
from .vectors import VectorIndex, cosine_similarity

__all__ = [
    "AgentRecallError",
    "ConfigurationError",
    "EmbeddingFailure",
    "EmbeddingProvider",
    "GateDecision",
    "MemoryEntry",
    "MemoryGate",
    "MemoryStore",
    "MetadataError",
    "PrototypeSet",
    "StorageFailure",
    "StoreClosedError",
    "VectorIndex",
    "cosine_similarity",
    "reciprocal_rank_fusion",
]
