"""
Embedding provider: text -> fixed-length float vector.

Wraps a ChromaDB embedding function (a sentence-transformers model by
default).  The provider is built once and handed to every component that
needs it; loading the model is expensive, so nothing in the package loads
one implicitly on first use.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Sequence

from chromadb.utils import embedding_functions

from .errors import ConfigurationError, EmbeddingFailure

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"

#: Torch weight precisions accepted for ``dtype``.  ``None`` keeps the
#: model's own (float32 for the default model).
SUPPORTED_DTYPES: tuple[str, ...] = ("float32", "float16", "bfloat16")

_PROBE_TEXT = "dimension probe"


def get_embedding_function(
    model_name: str = DEFAULT_MODEL,
    device: str = "cpu",
    cache_folder: str | None = None,
    dtype: str | None = None,
) -> embedding_functions.SentenceTransformerEmbeddingFunction:
    """Return a normalising sentence-transformer embedding function."""
    kwargs: dict[str, Any] = {}
    if cache_folder:
        kwargs["cache_folder"] = cache_folder
    if dtype:
        kwargs["model_kwargs"] = {"torch_dtype": dtype}
    return embedding_functions.SentenceTransformerEmbeddingFunction(
        model_name=model_name,
        device=device,
        normalize_embeddings=True,
        **kwargs,
    )


class EmbeddingProvider:
    """
    Deterministic text embedder with a dimension fixed at construction.

    Parameters
    ----------
    model_name:
        sentence-transformers model identifier.
    device:
        Torch device string passed to the model (``"cpu"``, ``"cuda"``, ...).
    cache_folder:
        Where downloaded model weights are kept.  ``None`` uses the
        sentence-transformers default.
    dtype:
        Weight precision, one of ``SUPPORTED_DTYPES``.  ``None`` keeps the
        model default.
    _embedding_function:
        Any callable with the ChromaDB embedding-function contract
        (``fn(list[str]) -> list[vector]``).  Replaces the model entirely;
        used by tests.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        device: str = "cpu",
        cache_folder: str | None = None,
        dtype: str | None = None,
        _embedding_function: Any | None = None,
    ) -> None:
        if dtype is not None and dtype not in SUPPORTED_DTYPES:
            raise ConfigurationError(
                f"unsupported dtype {dtype!r}; use one of {', '.join(SUPPORTED_DTYPES)}"
            )
        self.model_name = model_name
        self.dtype = dtype
        if _embedding_function is not None:
            self._fn = _embedding_function
        else:
            logger.info("Loading embedding model %s on %s", model_name, device)
            try:
                self._fn = get_embedding_function(model_name, device, cache_folder, dtype)
            except Exception as exc:
                raise ConfigurationError(
                    f"could not load embedding model {model_name!r}: {exc}"
                ) from exc
        # sentence-transformers models are not documented as safe for
        # concurrent encode() calls.
        self._lock = threading.Lock()
        self.dimension = len(self._call(_PROBE_TEXT))
        if self.dimension == 0:
            raise EmbeddingFailure("embedding function returned an empty vector")
        logger.info("Embedding provider ready: model=%s dim=%d", model_name, self.dimension)

    def embed(self, text: str) -> list[float]:
        """Embed *text*, returning exactly ``self.dimension`` floats."""
        vector = self._call(text)
        if len(vector) != self.dimension:
            raise EmbeddingFailure(
                f"expected a {self.dimension}-dim vector, got {len(vector)}"
            )
        return vector

    def _call(self, text: str) -> list[float]:
        try:
            with self._lock:
                result = self._fn([text])
        except Exception as exc:
            raise EmbeddingFailure(f"embedding failed: {exc}") from exc
        if result is None or len(result) != 1:
            raise EmbeddingFailure("embedding function must return one vector per input")
        return _to_floats(result[0])


def _to_floats(raw: Sequence[Any]) -> list[float]:
    try:
        vector = [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        raise EmbeddingFailure(f"malformed embedding vector: {exc}") from exc
    if not all(math.isfinite(x) for x in vector):
        raise EmbeddingFailure("embedding vector contains NaN or infinity")
    return vector
