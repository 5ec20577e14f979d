"""Tests for settings groups and their validators."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from mnemos.config.settings import (
    LoggingSettings,
    PromptSettings,
    RetrievalSettings,
    Settings,
    ToolSettings,
    VectorIndexSettings,
)


class TestRetrievalSettings:
    def test_defaults(self) -> None:
        s = RetrievalSettings()
        assert s.default_limit == 5
        assert s.min_similarity == 0.35
        assert s.candidate_multiplier == 2
        assert s.history_window == 3
        assert s.learning_rate == 0.05

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRIEVAL_MIN_SIMILARITY", "0.5")
        assert RetrievalSettings().min_similarity == 0.5

    def test_min_similarity_out_of_range(self) -> None:
        with pytest.raises(ValidationError, match="min_similarity must be in"):
            RetrievalSettings(min_similarity=1.5)

    @pytest.mark.parametrize("rate", [0.0, -0.1, 1.5])
    def test_learning_rate_out_of_range(self, rate: float) -> None:
        with pytest.raises(ValidationError, match="learning_rate must be in"):
            RetrievalSettings(learning_rate=rate)


class TestPromptSettings:
    def test_defaults(self) -> None:
        s = PromptSettings()
        assert s.max_context_tokens == 120_000
        assert s.reserve_tokens_for_response == 8_000

    def test_reserve_must_be_below_max(self) -> None:
        with pytest.raises(ValidationError, match="must be less than max_context_tokens"):
            PromptSettings(max_context_tokens=1_000, reserve_tokens_for_response=1_000)

    def test_max_must_be_positive(self) -> None:
        with pytest.raises(ValidationError, match="max_context_tokens must be > 0"):
            PromptSettings(max_context_tokens=0, reserve_tokens_for_response=-1)


class TestToolSettings:
    def test_defaults(self) -> None:
        s = ToolSettings()
        assert s.max_repeated_calls == 3
        assert s.max_tool_iterations == 10

    def test_repeated_calls_minimum(self) -> None:
        with pytest.raises(ValidationError):
            ToolSettings(max_repeated_calls=1)


class TestVectorIndexSettings:
    def test_defaults(self) -> None:
        s = VectorIndexSettings()
        assert s.backend == "memory"
        assert s.dimensions == 1536
        assert s.path is None

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValidationError):
            VectorIndexSettings(backend="faiss")

    def test_path_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VECTOR_INDEX_PATH", "data/index.usearch")
        assert VectorIndexSettings().path == Path("data/index.usearch")


class TestLoggingSettings:
    def test_level_normalized(self) -> None:
        assert LoggingSettings(level="debug").level == "DEBUG"

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError, match="LOG_LEVEL must be one of"):
            LoggingSettings(level="LOUD")


class TestRootSettings:
    def test_composes_groups(self) -> None:
        s = Settings()
        assert isinstance(s.retrieval, RetrievalSettings)
        assert isinstance(s.tools, ToolSettings)
        assert s.session.max_age_seconds == 3600.0
