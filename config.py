"""
Configuration settings for the studyforge generation pipeline.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.roster import DEFAULT_MODEL_POOL, ModelRoster
from src.processing.chunker import ChunkOptions


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # ========================================
    # Completion Provider (OpenRouter)
    # ========================================
    openrouter_api_key: str | None = Field(
        default=None,
        description="OpenRouter API key used for every completion request",
    )
    openrouter_api_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        description="Chat completions endpoint",
    )
    openrouter_referer: str = Field(
        default="https://studyforge.local",
        description="Value sent as HTTP-Referer (used by OpenRouter for attribution)",
    )
    openrouter_app_title: str = Field(
        default="StudyForge",
        description="Value sent as X-Title",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a single completion request",
    )

    # ─── Model Priority ─────────────────────────────────────────────────────────
    model_pool: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MODEL_POOL),
        description="Candidate model ids, order = preference",
    )

    # ========================================
    # Retry / Fallback
    # ========================================
    retry_max_attempts: int = Field(
        default=5,
        description="Attempts per model for rate-limited or transient server errors",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        description="Base delay for exponential backoff",
    )
    retry_max_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single backoff delay",
    )
    retry_jitter_seconds: float = Field(
        default=0.5,
        description="Maximum random jitter added to each backoff delay",
    )

    # ========================================
    # Chunking
    # ========================================
    chunk_max_size: int = Field(
        default=3000,
        description="Maximum characters per chunk for generation",
    )
    chunk_overlap_size: int = Field(
        default=600,
        description="Characters shared between adjacent chunks",
    )
    chunk_preserve_paragraphs: bool = Field(
        default=True,
        description="Prefer paragraph and line breaks as chunk boundaries",
    )
    chunk_adaptive: bool = Field(
        default=True,
        description="Shrink chunks for dense (numeric/code-heavy) content",
    )
    chunking_token_threshold: int = Field(
        default=4000,
        description="Estimated tokens above which content is processed in chunks",
    )
    qa_chunk_max_size: int = Field(
        default=6000,
        description="Chunk size used when answering questions over long context",
    )
    context_max_tokens: int = Field(
        default=3200,
        description="Token budget for stitched multi-source context",
    )

    # ========================================
    # Pacing
    # ========================================
    pacing_min_seconds: float = Field(
        default=0.5,
        description="Minimum pause between chunk calls",
    )
    pacing_max_seconds: float = Field(
        default=1.0,
        description="Maximum pause between chunk calls",
    )

    # ========================================
    # Generation Defaults
    # ========================================
    min_source_chars: int = Field(
        default=20,
        description="Reject source text shorter than this before any network call",
    )
    default_quiz_questions: int = Field(
        default=5,
        description="Questions generated when no count is given",
    )
    default_flashcards: int = Field(
        default=10,
        description="Flashcards generated when no count is given",
    )
    default_difficulty: Literal["beginner", "intermediate", "advanced"] = Field(
        default="intermediate",
        description="Difficulty hint for lessons",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_ai_configured(self) -> bool:
        """Check if the completion provider is configured."""
        return bool(self.openrouter_api_key and self.openrouter_api_key.strip())

    def get_model_roster(self) -> ModelRoster:
        """Build the per-feature model priority lists from the configured pool."""
        return ModelRoster.from_pool(self.model_pool)

    def get_retry_config(self) -> dict[str, Any]:
        """Get retry/backoff configuration as a dictionary."""
        return {
            "max_attempts": self.retry_max_attempts,
            "base_delay": self.retry_base_delay_seconds,
            "max_delay": self.retry_max_delay_seconds,
            "jitter": self.retry_jitter_seconds,
        }

    def get_chunk_options(self) -> ChunkOptions:
        """Chunk options used by the generators' multi-chunk path."""
        return ChunkOptions(
            max_chunk_size=self.chunk_max_size,
            overlap_size=self.chunk_overlap_size,
            preserve_paragraphs=self.chunk_preserve_paragraphs,
            adaptive_chunking=self.chunk_adaptive,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
