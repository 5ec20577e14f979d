from __future__ import annotations

from pathlib import Path
from typing import Literal, Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once at module import; every BaseSettings subclass sees the env vars
load_dotenv()


class OpenAISettings(BaseSettings):
    """OpenAI-compatible API settings. Env vars prefixed with OPENAI_.

    An empty api_key leaves the backend unconfigured: the agent loop then
    fails every stream immediately instead of attempting network calls.
    """

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    max_retries: int = Field(3, ge=0, le=10)
    retry_base_delay: float = Field(1.0, gt=0)


class RetrievalSettings(BaseSettings):
    """Context retrieval and embedding feedback settings. Env prefix RETRIEVAL_."""

    model_config = SettingsConfigDict(env_prefix="RETRIEVAL_")

    default_limit: int = Field(5, ge=1)
    min_similarity: float = 0.35  # lower than a direct-hit threshold to leave room for re-ranking
    candidate_multiplier: int = Field(2, ge=1)
    history_window: int = Field(3, ge=0)  # user/assistant turns fed to tag generation
    learning_rate: float = 0.05

    @field_validator("min_similarity")
    @classmethod
    def _validate_min_similarity(cls, v: float) -> float:
        if not (-1.0 <= v <= 1.0):
            raise ValueError(f"min_similarity must be in [-1, 1], got {v}")
        return v

    @field_validator("learning_rate")
    @classmethod
    def _validate_learning_rate(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError(f"learning_rate must be in (0, 1], got {v}")
        return v


class VectorIndexSettings(BaseSettings):
    """Vector index backend settings. Env prefix VECTOR_INDEX_."""

    model_config = SettingsConfigDict(env_prefix="VECTOR_INDEX_")

    backend: Literal["memory", "usearch"] = "memory"
    dimensions: int = Field(1536, gt=0)
    path: Path | None = None
    connectivity: int = Field(16, gt=0)


class PromptSettings(BaseSettings):
    """Prompt assembly token budget. Env prefix PROMPT_."""

    model_config = SettingsConfigDict(env_prefix="PROMPT_")

    max_context_tokens: int = 120_000
    reserve_tokens_for_response: int = 8_000

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.max_context_tokens <= 0:
            raise ValueError(
                f"max_context_tokens must be > 0, got {self.max_context_tokens}"
            )
        if self.reserve_tokens_for_response >= self.max_context_tokens:
            raise ValueError(
                f"reserve_tokens_for_response ({self.reserve_tokens_for_response}) "
                f"must be less than max_context_tokens ({self.max_context_tokens})"
            )
        return self


class ToolSettings(BaseSettings):
    """Tool orchestration settings. Env prefix TOOLS_."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_")

    max_repeated_calls: int = Field(3, ge=2)
    max_tool_iterations: int = Field(10, ge=1)


class SessionSettings(BaseSettings):
    """Session lifecycle settings. Env prefix SESSION_."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    workspace_root: Path = Path("workspace")
    max_age_seconds: float = Field(3600.0, gt=0)  # staleness eviction threshold


class LoggingSettings(BaseSettings):
    """Logging output settings. Env prefix LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    json_output: bool = True
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed} (got '{v}')")
        return v.upper()


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    vector_index: VectorIndexSettings = Field(default_factory=VectorIndexSettings)
    prompt: PromptSettings = Field(default_factory=PromptSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
