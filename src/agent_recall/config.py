"""
Runtime configuration resolved from environment variables.

    AGENT_RECALL_DB_PATH            - SQLite database file (default: ~/.cache/agent-recall/memory.db)
    AGENT_RECALL_MODEL              - sentence-transformers model (default: all-MiniLM-L6-v2)
    AGENT_RECALL_DEVICE             - torch device for the model (default: cpu)
    AGENT_RECALL_CACHE_DIR          - where model weights are cached (default: library default)
    AGENT_RECALL_DTYPE              - model weight precision: float32, float16, bfloat16 (default: model default)
    AGENT_RECALL_GAP_THRESHOLD      - gate importance-gap threshold (default: 0.009)
    AGENT_RECALL_NOVELTY_THRESHOLD  - gate near-duplicate threshold (default: 0.87)
    AGENT_RECALL_MIN_CHARS          - shortest content the gate accepts (default: 20)
    AGENT_RECALL_MAX_CHARS          - longest content the gate accepts (default: 800)
    AGENT_RECALL_LOG_LEVEL          - logging level name (default: WARNING)
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .embeddings import DEFAULT_MODEL, SUPPORTED_DTYPES
from .errors import ConfigurationError
from .gate import (
    DEFAULT_GAP_THRESHOLD,
    DEFAULT_MAX_CHARS,
    DEFAULT_MIN_CHARS,
    DEFAULT_NOVELTY_THRESHOLD,
)

ENV_PREFIX = "AGENT_RECALL_"

DEFAULT_DB_PATH = str(Path.home() / ".cache" / "agent-recall" / "memory.db")


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    model: str = DEFAULT_MODEL
    device: str = "cpu"
    cache_dir: str | None = None
    dtype: str | None = None
    gap_threshold: float = DEFAULT_GAP_THRESHOLD
    novelty_threshold: float = DEFAULT_NOVELTY_THRESHOLD
    min_chars: int = DEFAULT_MIN_CHARS
    max_chars: int = DEFAULT_MAX_CHARS
    log_level: str = "WARNING"

    def gate_kwargs(self) -> dict[str, float | int]:
        """Keyword arguments for ``MemoryStore.should_create_memory``."""
        return {
            "gap_threshold": self.gap_threshold,
            "novelty_threshold": self.novelty_threshold,
            "min_chars": self.min_chars,
            "max_chars": self.max_chars,
        }


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from *environ* (``os.environ`` by default)."""
    env = os.environ if environ is None else environ

    def get(name: str) -> str | None:
        value = env.get(ENV_PREFIX + name)
        return value.strip() if value is not None and value.strip() else None

    log_level = (get("LOG_LEVEL") or "WARNING").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"unknown log level {log_level!r}")

    dtype = get("DTYPE")
    if dtype is not None:
        dtype = dtype.lower()
        if dtype not in SUPPORTED_DTYPES:
            raise ConfigurationError(
                f"{ENV_PREFIX}DTYPE must be one of {', '.join(SUPPORTED_DTYPES)}, got {dtype!r}"
            )

    settings = Settings(
        db_path=get("DB_PATH") or DEFAULT_DB_PATH,
        model=get("MODEL") or DEFAULT_MODEL,
        device=get("DEVICE") or "cpu",
        cache_dir=get("CACHE_DIR"),
        dtype=dtype,
        gap_threshold=_parse(get("GAP_THRESHOLD"), float, DEFAULT_GAP_THRESHOLD, "GAP_THRESHOLD"),
        novelty_threshold=_parse(
            get("NOVELTY_THRESHOLD"), float, DEFAULT_NOVELTY_THRESHOLD, "NOVELTY_THRESHOLD"
        ),
        min_chars=_parse(get("MIN_CHARS"), int, DEFAULT_MIN_CHARS, "MIN_CHARS"),
        max_chars=_parse(get("MAX_CHARS"), int, DEFAULT_MAX_CHARS, "MAX_CHARS"),
        log_level=log_level,
    )
    if settings.min_chars < 0 or settings.min_chars > settings.max_chars:
        raise ConfigurationError(
            f"{ENV_PREFIX}MIN_CHARS must be between 0 and {ENV_PREFIX}MAX_CHARS"
        )
    return settings


def configure_logging(level: str) -> None:
    """Send package logs to stderr at *level* (stdout is reserved for output)."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse(raw: str | None, kind: type, default, name: str):
    if raw is None:
        return default
    try:
        value = kind(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name}: cannot parse {raw!r}") from exc
    if isinstance(value, float) and not math.isfinite(value):
        raise ConfigurationError(f"{ENV_PREFIX}{name}: must be finite, got {raw!r}")
    return value
