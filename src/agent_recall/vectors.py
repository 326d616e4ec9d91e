"""
Exhaustive cosine-similarity scoring.

Every stored vector is compared against the query; there is no pruning and
no approximate index.  The corpus is scored as one ``float32`` matrix, which
keeps a full pass over tens of thousands of entries in the millisecond
range.  A larger deployment should swap an approximate nearest-neighbour
index in behind ``VectorIndex.score`` without touching callers.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

#: dtype used for stored embeddings and for scoring.
VECTOR_DTYPE = np.float32


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of *a* and *b*: dot(a, b) / (|a| * |b|).

    Returns ``0.0`` when either vector has zero norm.  Vectors of different
    lengths raise ``ValueError``.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.size} != {vb.size}")
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of *query* against every row of *matrix*.

    Rows with zero norm, and every row when *query* has zero norm, score 0.
    """
    matrix = np.asarray(matrix)
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    # Score in the matrix's own float dtype so a float32 corpus is not copied.
    dtype = matrix.dtype if matrix.dtype.kind == "f" else np.float64
    matrix = matrix.astype(dtype, copy=False)
    q = np.asarray(query, dtype=dtype)
    if matrix.ndim != 2 or matrix.shape[1] != q.shape[0]:
        raise ValueError(f"dimension mismatch: {q.shape[0]} != {matrix.shape[-1]}")
    q_norm = np.linalg.norm(q)
    if q_norm == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * q_norm
    dots = matrix @ q
    sims = np.zeros(matrix.shape[0], dtype=np.float64)
    np.divide(dots, norms, out=sims, where=norms > 0)
    return sims


def stack_vectors(
    vectors: Iterable[Sequence[float] | None], dimension: int | None = None
) -> np.ndarray:
    """Stack *vectors* into one matrix; ``None`` becomes a zero row."""
    rows = list(vectors)
    if dimension is None:
        dimension = next((len(v) for v in rows if v is not None), 0)
    matrix = np.zeros((len(rows), dimension), dtype=VECTOR_DTYPE)
    for i, vector in enumerate(rows):
        if vector is not None:
            matrix[i] = vector
    return matrix


class VectorIndex:
    """Brute-force scorer over an id list and a matching vector matrix."""

    @staticmethod
    def rank(
        query: Sequence[float],
        ids: Sequence[str],
        matrix: np.ndarray,
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        """
        Score row ``i`` of *matrix* (belonging to ``ids[i]``) against *query*.

        Returns ``(id, similarity)`` pairs sorted by descending similarity.
        Ties keep row order.
        """
        if limit is not None and limit <= 0:
            return []
        sims = cosine_similarities(query, matrix)
        order = np.argsort(-sims, kind="stable")
        if limit is not None:
            order = order[:limit]
        return [(ids[i], float(sims[i])) for i in order]

    @staticmethod
    def score(
        query: Sequence[float],
        corpus: Iterable[tuple[str, Sequence[float] | None]],
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        """
        Score every ``(id, vector)`` pair in *corpus* against *query*.

        Entries with a ``None`` vector score 0.0.
        """
        pairs = list(corpus)
        matrix = stack_vectors((vector for _, vector in pairs), len(query))
        return VectorIndex.rank(query, [entry_id for entry_id, _ in pairs], matrix, limit)
