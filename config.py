"""
Configuration management for the Narrative Workshop backend.

Centralizes all configuration using Pydantic settings with environment variable support.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./workshop.db",
        description="SQLAlchemy connection URL for the version/prompt key-value store"
    )
    db_pool_size: int = Field(
        default=5,
        description="Database connection pool size (ignored for SQLite)"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections (ignored for SQLite)"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Connection pool timeout in seconds"
    )

    # LLM Configuration
    llm_provider: str = Field(
        default="openai",
        description="Provider for reflection prompt generation: openai, anthropic, google"
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model id used by the reflection prompt agent"
    )
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key"
    )
    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API key (required when llm_provider=anthropic)"
    )
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key (required when llm_provider=google)"
    )
    llm_timeout_seconds: int = Field(
        default=60,
        description="Timeout for a single LLM call"
    )

    # Analysis backend
    analysis_api_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the rubric analysis backend"
    )
    analysis_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for one analysis request"
    )
    analysis_max_retries: int = Field(
        default=2,
        description="Retries after the first failed analysis request"
    )
    analysis_retry_delay_seconds: float = Field(
        default=1.0,
        description="Initial backoff delay between analysis retries"
    )

    # Reflection prompts
    reflection_tone: str = Field(
        default="mentor",
        description="Tone requested from the narrative-generation collaborator"
    )
    reflection_prompt_count: int = Field(
        default=3,
        description="Number of guided questions generated per teaching issue"
    )
    reflection_max_retries: int = Field(
        default=3,
        description="Attempts before a reflection prompt generation is reported as failed"
    )
    reflection_batch_limit: int = Field(
        default=5,
        description="Maximum issues requested in one batch prompt generation"
    )

    # Workshop
    workspace_min_completion_chars: int = Field(
        default=50,
        description="Minimum workspace draft length before an issue can be completed"
    )

    # Application Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Returns:
        Settings: Application settings
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None


PROVIDER_KEYS = {
    "openai": "openai_api_key",
    "anthropic": "anthropic_api_key",
    "google": "gemini_api_key",
}


def validate_required_settings():
    """
    Validate that all required settings are present at runtime.

    Raises ConfigurationError if the configured LLM provider has no key
    or the database URL is missing.
    """
    from workshop.exceptions import ConfigurationError

    settings = get_settings()

    key_field = PROVIDER_KEYS.get(settings.llm_provider)
    if key_field is None:
        raise ConfigurationError("llm_provider", f"unknown provider '{settings.llm_provider}'")

    if not getattr(settings, key_field):
        raise ConfigurationError(
            key_field,
            f"{key_field.upper()} is required when LLM_PROVIDER={settings.llm_provider}",
        )

    if not settings.database_url:
        raise ConfigurationError("database_url", "DATABASE_URL is required but not set")

    return True
