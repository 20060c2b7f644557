"""
Configuration management for Math Club Grader.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Missing required fields
    will raise clear validation errors.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # OpenAI API Configuration
    # ==========================================================================
    openai_api_key: str = Field(
        ...,
        description="API key for the OpenAI-compatible completion endpoint",
        min_length=10,
    )

    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the completion API",
    )

    grading_model: str = Field(
        default="gpt-4o-mini",
        description="Model used to grade text-only essay answers",
    )

    vision_model: str = Field(
        default="gpt-4o",
        description="Model used when the essay answer contains images",
    )

    extraction_model: str = Field(
        default="gpt-4o",
        description="Model used to extract questions from exam documents",
    )

    chat_model: str = Field(
        default="gpt-4o",
        description="Model used by the explanation assistant",
    )

    # ==========================================================================
    # Grading Configuration
    # ==========================================================================
    grading_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Temperature for essay grading (near-deterministic)",
    )

    grading_max_tokens: int = Field(
        default=500,
        ge=50,
        le=4096,
        description="Maximum tokens in an essay grading response",
    )

    extraction_max_tokens: int = Field(
        default=16384,
        ge=1024,
        description="Maximum tokens in an exam extraction response",
    )

    chat_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for the explanation assistant",
    )

    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Upper bound on a single AI request before it is aborted",
    )

    # ==========================================================================
    # Storage and Logging Configuration
    # ==========================================================================
    data_directory: Path = Field(
        default=Path("./data"),
        description="Directory holding the JSON session store",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level for the CLI",
    )

    @field_validator("openai_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
