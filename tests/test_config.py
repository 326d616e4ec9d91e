"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from agent_recall.config import DEFAULT_DB_PATH, Settings, load_settings
from agent_recall.errors import ConfigurationError


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.db_path == DEFAULT_DB_PATH
        assert settings.model == "all-MiniLM-L6-v2"
        assert settings.gap_threshold == 0.009
        assert settings.novelty_threshold == 0.87
        assert (settings.min_chars, settings.max_chars) == (20, 800)
        assert settings.cache_dir is None

    def test_overrides(self):
        settings = load_settings(
            {
                "AGENT_RECALL_DB_PATH": "/tmp/m.db",
                "AGENT_RECALL_MODEL": "BAAI/bge-small-en-v1.5",
                "AGENT_RECALL_DEVICE": "cuda",
                "AGENT_RECALL_CACHE_DIR": "/models",
                "AGENT_RECALL_GAP_THRESHOLD": "-0.047",
                "AGENT_RECALL_NOVELTY_THRESHOLD": "0.9",
                "AGENT_RECALL_MIN_CHARS": "10",
                "AGENT_RECALL_MAX_CHARS": "400",
                "AGENT_RECALL_LOG_LEVEL": "debug",
            }
        )
        assert settings.db_path == "/tmp/m.db"
        assert settings.model == "BAAI/bge-small-en-v1.5"
        assert settings.device == "cuda"
        assert settings.cache_dir == "/models"
        assert settings.gap_threshold == -0.047
        assert settings.novelty_threshold == 0.9
        assert (settings.min_chars, settings.max_chars) == (10, 400)
        assert settings.log_level == "DEBUG"

    def test_blank_values_fall_back_to_defaults(self):
        settings = load_settings({"AGENT_RECALL_MODEL": "  ", "AGENT_RECALL_GAP_THRESHOLD": ""})
        assert settings.model == "all-MiniLM-L6-v2"
        assert settings.gap_threshold == 0.009

    @pytest.mark.parametrize(
        "env",
        [
            {"AGENT_RECALL_GAP_THRESHOLD": "abc"},
            {"AGENT_RECALL_NOVELTY_THRESHOLD": "nan"},
            {"AGENT_RECALL_MIN_CHARS": "1.5"},
            {"AGENT_RECALL_MIN_CHARS": "900"},
            {"AGENT_RECALL_LOG_LEVEL": "LOUD"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            load_settings(env)

    def test_dtype(self):
        assert load_settings({}).dtype is None
        assert load_settings({"AGENT_RECALL_DTYPE": "Float16"}).dtype == "float16"
        with pytest.raises(ConfigurationError, match="DTYPE"):
            load_settings({"AGENT_RECALL_DTYPE": "q4"})

    def test_gate_kwargs(self):
        kwargs = Settings(gap_threshold=0.1, max_chars=100).gate_kwargs()
        assert kwargs == {
            "gap_threshold": 0.1,
            "novelty_threshold": 0.87,
            "min_chars": 20,
            "max_chars": 100,
        }
