"""
Double Mirror — Application Configuration

Every tunable (model chain, retry schedule, timeouts, optional database)
comes from the environment or a local .env file.  Services call
``get_settings()`` at construction time; tests patch it per module.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Double Mirror analysis service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Gemini LLM
    # ------------------------------------------------------------------ #
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL_PRIMARY: str = "models/gemini-2.0-flash"
    GEMINI_MODEL_FALLBACK: str = "models/gemini-2.0-flash-lite"
    GEMINI_MODEL_EXTRA: str = ""  # comma-separated, tried after the fallback
    GEMINI_MODEL_CHAIN_CEILING: int = 2
    GEMINI_MAX_OUTPUT_TOKENS: int = 1024

    # Feedback may run on its own pair; empty means "same as scoring".
    GEMINI_FEEDBACK_MODEL_PRIMARY: str = ""
    GEMINI_FEEDBACK_MODEL_FALLBACK: str = ""

    # ------------------------------------------------------------------ #
    # Retry orchestration
    # ------------------------------------------------------------------ #
    ANALYSIS_MAX_ATTEMPTS: int = 3
    ANALYSIS_ATTEMPT_TIMEOUT_SECONDS: float = 15.0
    ANALYSIS_BACKOFF_BASE_SECONDS: float = 3.0
    ANALYSIS_BACKOFF_MULTIPLIER: float = 1.5
    ANALYSIS_BACKOFF_MAX_SECONDS: float = 20.0

    # ------------------------------------------------------------------ #
    # Database – reflections are only written when a URL is configured
    # ------------------------------------------------------------------ #
    DATABASE_URL: str = ""

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 70.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def scoring_model_chain(self) -> list[str]:
        """Ordered model identifiers for scoring, before the ceiling applies."""
        extras = [m.strip() for m in self.GEMINI_MODEL_EXTRA.split(",") if m.strip()]
        chain = [self.GEMINI_MODEL_PRIMARY, self.GEMINI_MODEL_FALLBACK, *extras]
        return [m for m in chain if m]

    @property
    def feedback_model_chain(self) -> list[str]:
        if not self.GEMINI_FEEDBACK_MODEL_PRIMARY:
            return self.scoring_model_chain
        chain = [
            self.GEMINI_FEEDBACK_MODEL_PRIMARY,
            self.GEMINI_FEEDBACK_MODEL_FALLBACK,
        ]
        return [m for m in chain if m]

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.DATABASE_URL)

    @field_validator(
        "GEMINI_MODEL_CHAIN_CEILING",
        "ANALYSIS_MAX_ATTEMPTS",
    )
    @classmethod
    def _must_be_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator(
        "ANALYSIS_ATTEMPT_TIMEOUT_SECONDS",
        "ANALYSIS_BACKOFF_MULTIPLIER",
        "REQUEST_TIMEOUT_SECONDS",
    )
    @classmethod
    def _must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Parse the environment once per process."""
    return Settings()  # type: ignore[call-arg]
