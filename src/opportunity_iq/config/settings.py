"""Configuration settings for OpportunityIQ."""

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Used when AI_MODELS is unset; keyed by provider
DEFAULT_MODEL_CASCADES: dict[str, tuple[str, ...]] = {
    "gemini": ("gemini-3-flash-preview", "gemini-3-pro-preview", "gemini-flash-latest"),
    "openai": ("gpt-5-mini", "gpt-5-nano"),
    "claude": ("claude-sonnet-4-5", "claude-haiku-4-5"),
}

DEFAULT_STORAGE_KEY = "oiq_user_data_v1"


class ConfigurationError(Exception):
    """Required configuration is missing or invalid."""


def _is_placeholder(value: str | None) -> bool:
    return not value or not value.strip() or "placeholder" in value


class Settings(BaseSettings):
    """Flat settings read from the environment (and an optional .env file).

    Where several variables can supply the same value, the first one present
    in the alias list wins.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Generative completion API
    ai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "OIQ_API_KEY", "API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"
        ),
    )
    ai_provider: Literal["gemini", "openai", "claude"] = Field(
        default="gemini", validation_alias="AI_PROVIDER"
    )
    ai_models: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        validation_alias="AI_MODELS",
    )
    ai_temperature: float = Field(default=0.7, validation_alias="AI_TEMPERATURE")
    ai_max_tokens: int = Field(default=4096, validation_alias="AI_MAX_TOKENS")
    ai_timeout_seconds: float = Field(default=60.0, validation_alias="AI_TIMEOUT_SECONDS")

    # Hosted relational backend (Supabase)
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    supabase_anon_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
    )
    supabase_timeout: float = Field(default=30.0, validation_alias="SUPABASE_TIMEOUT")
    supabase_max_retries: int = Field(default=3, validation_alias="SUPABASE_MAX_RETRIES")

    # Local key/value fallback
    local_storage_path: Path = Field(
        default=Path.home() / ".opportunity_iq" / "storage.json",
        validation_alias="OIQ_STORAGE_PATH",
    )
    storage_key: str = Field(default=DEFAULT_STORAGE_KEY, validation_alias="OIQ_STORAGE_KEY")

    # Auto-save quiet windows
    profile_debounce_seconds: float = Field(
        default=1.0, validation_alias="PROFILE_DEBOUNCE_SECONDS"
    )
    compass_debounce_seconds: float = Field(
        default=1.0, validation_alias="COMPASS_DEBOUNCE_SECONDS"
    )
    context_debounce_seconds: float = Field(
        default=2.0, validation_alias="CONTEXT_DEBOUNCE_SECONDS"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @field_validator("ai_models", mode="before")
    @classmethod
    def _split_models(cls, value: Any) -> Any:
        """Accept a JSON list or a comma-separated string."""
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                return json.loads(stripped)
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return value

    @property
    def model_cascade(self) -> tuple[str, ...]:
        """Configured models, or the provider's default cascade when none are set."""
        if self.ai_models:
            return tuple(self.ai_models)
        return DEFAULT_MODEL_CASCADES[self.ai_provider]


@dataclass(frozen=True)
class AIConfig:
    """Resolved configuration for the AI proxy service."""

    api_key: str
    provider: str
    models: tuple[str, ...]
    temperature: float
    max_tokens: int
    timeout_seconds: float

    @property
    def primary_model(self) -> str:
        return self.models[0]


@dataclass(frozen=True)
class SupabaseConfig:
    """Resolved configuration for the remote persistence backend."""

    url: str
    anon_key: str
    timeout: float
    max_retries: int


def resolve_ai_config(settings: Settings | None = None) -> AIConfig:
    """Resolve the AI proxy configuration.

    Raises:
        ConfigurationError: If no API key is configured.
    """
    settings = settings or get_settings()
    key = settings.ai_api_key.get_secret_value().strip() if settings.ai_api_key else ""
    if _is_placeholder(key):
        raise ConfigurationError(
            "An AI API key is required: set OIQ_API_KEY, API_KEY, GEMINI_API_KEY "
            "or GOOGLE_API_KEY"
        )
    return AIConfig(
        api_key=key,
        provider=settings.ai_provider,
        models=settings.model_cascade,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout_seconds=settings.ai_timeout_seconds,
    )


def resolve_supabase_config(settings: Settings | None = None) -> SupabaseConfig | None:
    """Resolve the remote backend configuration, or None when it is absent."""
    settings = settings or get_settings()
    url = (settings.supabase_url or "").strip()
    key = settings.supabase_anon_key.get_secret_value().strip() if settings.supabase_anon_key else ""
    if _is_placeholder(url) or _is_placeholder(key):
        return None
    return SupabaseConfig(
        url=url.rstrip("/"),
        anon_key=key,
        timeout=settings.supabase_timeout,
        max_retries=settings.supabase_max_retries,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
