"""Configuration management for the call lead-intelligence pipeline."""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ===========================================
    # Supabase Configuration
    # ===========================================
    SUPABASE_URL: str = Field(default="", description="Supabase project URL")
    SUPABASE_KEY: str = Field(default="", description="Supabase service key")
    CALLS_TABLE: str = Field(default="dialer_calls", description="Table holding call records")
    USERS_TABLE: str = Field(default="users", description="Table holding per-user prompt overrides")

    # ===========================================
    # OpenAI Configuration
    # ===========================================
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_BASE_URL: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL"
    )
    OPENAI_TIMEOUT: float = Field(default=30.0, description="Responses API request timeout (seconds)")
    OPENAI_MODEL: Optional[str] = Field(
        default=None,
        description="Model used when a prompt template cannot be found"
    )
    OPENAI_INDIVIDUAL_PROMPT_ID: str = Field(
        default="",
        description="System default prompt template for per-call analysis"
    )
    OPENAI_COMPLETE_PROMPT_ID: str = Field(
        default="",
        description="System default prompt template for historical analysis"
    )

    # ===========================================
    # Speech-to-text Configuration
    # ===========================================
    TRANSCRIPTION_MODEL: str = Field(default="whisper-1", description="Speech-to-text model")
    TRANSCRIPTION_TIMEOUT: float = Field(
        default=120.0,
        description="Recording download / transcription timeout (seconds)"
    )
    RECORDING_AUTH_ID: str = Field(default="", description="Basic-auth id for recording downloads")
    RECORDING_AUTH_TOKEN: str = Field(default="", description="Basic-auth token for recording downloads")
    RECORDING_WAIT_TIMEOUT: float = Field(
        default=60.0,
        description="How long to wait for a late recording webhook (seconds)"
    )
    RECORDING_POLL_INTERVAL: float = Field(
        default=2.0,
        description="Poll period while waiting for the recording URL (seconds)"
    )

    # ===========================================
    # Lead Intelligence
    # ===========================================
    HISTORY_LIMIT: int = Field(
        default=5,
        description="Prior calls considered for the complete analysis"
    )

    # ===========================================
    # Server Configuration
    # ===========================================
    SENTRY_DSN: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    DEBUG: bool = Field(default=False, description="Debug mode")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


PROMPT_KINDS = ("individual", "complete")


def get_effective_prompt_id(user_prompt_id: Optional[str], kind: str) -> str:
    """
    Resolve the prompt template to use for an analysis.

    Args:
        user_prompt_id: The user's custom template id, if any
        kind: "individual" or "complete"

    Returns:
        The user's template id when set, otherwise the system default
    """
    if kind not in PROMPT_KINDS:
        raise ValueError(f"Unknown prompt kind: {kind}")

    if user_prompt_id and user_prompt_id.strip():
        return user_prompt_id.strip()

    settings = get_settings()
    if kind == "individual":
        return settings.OPENAI_INDIVIDUAL_PROMPT_ID
    return settings.OPENAI_COMPLETE_PROMPT_ID


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
