"""
Reciprocal Rank Fusion of independently ranked id lists.

BM25 scores and cosine similarities live on unrelated scales, so the two
lists are fused by rank position only: the item at 0-based rank ``i`` of a
list contributes ``1 / (k + i)``, and an id's fused score is the sum of its
contributions across every list it appears in.
"""

from __future__ import annotations

from typing import Iterable, Sequence

#: Fusion constant.
RRF_K: int = 60


def reciprocal_rank_fusion(
    ranked_lists: Iterable[Sequence[str]],
    limit: int | None = None,
    k: int = RRF_K,
) -> list[tuple[str, float]]:
    """
    Fuse *ranked_lists* into one ``(id, fused_score)`` list.

    The output holds every distinct id from the inputs, sorted by
    descending fused score and truncated to *limit*.  Ids with equal scores
    keep the order in which they were first encountered (lists are read in
    the order given), so the output is fully deterministic.
    """
    scores: dict[str, float] = {}
    for ranked in ranked_lists:
        for rank, item_id in enumerate(ranked):
            scores[item_id] = scores.get(item_id, 0.0) + 1.0 / (k + rank)

    fused = sorted(scores.items(), key=lambda pair: pair[1], reverse=True)
    if limit is not None:
        fused = fused[: max(limit, 0)]
    return fused
