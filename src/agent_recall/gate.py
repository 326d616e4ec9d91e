"""
Memory gate: decides whether a piece of content is worth storing.

Three stages, cheapest first:

1. **Length** – content outside ``[min_chars, max_chars]`` is rejected
   without being embedded.
2. **Importance gap** – the content embedding is compared with two fixed
   sets of prototype phrases.  ``gap = max(positive sims) - mean(top-2
   negative sims)``; content whose gap falls below ``gap_threshold`` is
   rejected.  Averaging the two best negatives keeps a single lucky
   negative prototype from deciding the outcome.
3. **Novelty** – the best similarity against the existing corpus must stay
   below ``novelty_threshold``, otherwise the content is a near-duplicate.

The default thresholds were tuned for one embedding model.  Recalibrate
them (see ``agent_recall.evaluation``) when switching models.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from .embeddings import EmbeddingProvider
from .errors import ConfigurationError
from .vectors import cosine_similarities

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_GAP_THRESHOLD: float = 0.009
DEFAULT_NOVELTY_THRESHOLD: float = 0.87
DEFAULT_MIN_CHARS: int = 20
DEFAULT_MAX_CHARS: int = 800

#: Durable, memorable statements.
POSITIVE_PROTOTYPES: tuple[str, ...] = (
    "user permanently prefers specific tools languages frameworks themes and hates specific alternatives for all future work",
    "user personal identity: name birthday allergy disability pronouns timezone contact email credential",
    "permanent project rule: always do X and never do Y when building deploying testing or configuring",
    "lesson learned from real experience: this specific approach solved a problem that another approach caused",
    "persistent project config: branch names ports registries CI pipelines that must stay consistent",
    "user explicitly asked to remember this fact for all future sessions and interactions",
    "user's personal work schedule availability and accessibility needs that affect every interaction",
    "user casually mentioned a permanent personal fact: language fluency work hours disability diet",
)

#: Ephemeral chatter, status updates, questions and general knowledge.
NEGATIVE_PROTOTYPES: tuple[str, ...] = (
    "casual chat: greetings thanks acknowledgments reactions feelings okay sounds good",
    "ephemeral event happening right now: build failing deploying fixing pushing committing running tests",
    "general tech knowledge: what a framework library protocol or language is and how it generally works",
    "question asking for help: how do I, can you help, what does this mean, should I use X or Y",
    "status narration: working on feature, had a meeting, team is doing X, spent yesterday on, client wants",
    "opinion about external tech: looks nice, is overhyped, talk was great, article is interesting, ecosystem moves fast",
    "emotional reaction to current work: frustrated, excited, love it, hate it, finally done, best code ever",
    "React is a library, TypeScript adds types, Docker is portable, Node runs JS outside browser",
    "the build is failing, just pushed a fix, tests passing locally, linter complaining, deploying now",
    "how do I set up nginx, can you debug this, what does this error mean, should I use Map or Object",
    "working on payment feature, had sprint planning, code review took long, using Figma for designs",
)

#: Decision reasons reported by ``GateDecision.reason``.
ACCEPTED = "accepted"
TOO_SHORT = "too_short"
TOO_LONG = "too_long"
LOW_IMPORTANCE = "low_importance"
DUPLICATE = "duplicate"


# ---------------------------------------------------------------------------
# Prototypes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrototypeSet:
    """Embedded positive and negative prototype phrases (read-only)."""

    positive: tuple[tuple[float, ...], ...]
    negative: tuple[tuple[float, ...], ...]

    @classmethod
    def build(
        cls,
        embedder: EmbeddingProvider,
        positive_phrases: Sequence[str] = POSITIVE_PROTOTYPES,
        negative_phrases: Sequence[str] = NEGATIVE_PROTOTYPES,
    ) -> PrototypeSet:
        if not positive_phrases or not negative_phrases:
            raise ConfigurationError("both prototype phrase lists must be non-empty")
        logger.info(
            "Embedding %d positive and %d negative prototypes",
            len(positive_phrases),
            len(negative_phrases),
        )
        return cls(
            positive=tuple(tuple(embedder.embed(p)) for p in positive_phrases),
            negative=tuple(tuple(embedder.embed(p)) for p in negative_phrases),
        )

    def importance_gap(self, vector: Sequence[float]) -> float:
        """``max(positive sims) - mean(top-2 negative sims)`` for *vector*."""
        pos_sim = float(cosine_similarities(vector, np.asarray(self.positive)).max())
        neg_sims = np.sort(cosine_similarities(vector, np.asarray(self.negative)))[::-1]
        return pos_sim - float(neg_sims[:2].mean())


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    reason: str
    gap: float | None = None
    nearest_similarity: float | None = None


class MemoryGate:
    """
    Reusable predicate over content strings.

    Parameters
    ----------
    embedder:
        Provider used to embed candidate content.
    prototypes:
        Pre-built ``PrototypeSet``; shared, never rebuilt by the gate.
    nearest_similarity:
        Callable returning the best similarity between a vector and the
        current corpus (``0.0`` for an empty corpus).
    gap_threshold, novelty_threshold, min_chars, max_chars:
        Decision parameters; see the module docstring.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        prototypes: PrototypeSet,
        nearest_similarity: Callable[[Sequence[float]], float],
        gap_threshold: float = DEFAULT_GAP_THRESHOLD,
        novelty_threshold: float = DEFAULT_NOVELTY_THRESHOLD,
        min_chars: int = DEFAULT_MIN_CHARS,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        for name, value in (
            ("gap_threshold", gap_threshold),
            ("novelty_threshold", novelty_threshold),
        ):
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
        if min_chars < 0 or min_chars > max_chars:
            raise ConfigurationError(
                f"invalid length bounds: min_chars={min_chars}, max_chars={max_chars}"
            )
        self._embedder = embedder
        self._prototypes = prototypes
        self._nearest_similarity = nearest_similarity
        self.gap_threshold = float(gap_threshold)
        self.novelty_threshold = float(novelty_threshold)
        self.min_chars = min_chars
        self.max_chars = max_chars

    def __call__(self, content: str) -> bool:
        return self.decide(content).accepted

    def decide(self, content: str) -> GateDecision:
        """Run all three stages on *content* and explain the outcome."""
        if len(content) < self.min_chars:
            return GateDecision(False, TOO_SHORT)
        if len(content) > self.max_chars:
            return GateDecision(False, TOO_LONG)

        vector = self._embedder.embed(content)
        gap = self._prototypes.importance_gap(vector)
        if gap < self.gap_threshold:
            logger.debug("Gate rejected %r: gap %.4f < %.4f", content[:40], gap, self.gap_threshold)
            return GateDecision(False, LOW_IMPORTANCE, gap=gap)

        nearest = self._nearest_similarity(vector)
        if nearest >= self.novelty_threshold:
            logger.debug("Gate rejected %r: duplicate (sim %.4f)", content[:40], nearest)
            return GateDecision(False, DUPLICATE, gap=gap, nearest_similarity=nearest)

        return GateDecision(True, ACCEPTED, gap=gap, nearest_similarity=nearest)
