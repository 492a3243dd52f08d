"""Configuration management for Nudge."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "http://localhost:4000"


class Settings(BaseSettings):
    """Client settings."""

    model_config = SettingsConfigDict(
        env_prefix="NUDGE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, description="Base URL of the Nudge API")
    api_token: str | None = Field(default=None, description="Bearer token attached to every request")
    request_timeout_seconds: float = Field(default=30.0, description="Timeout for one HTTP call in seconds")
    nudge_path: str = Field(default="/nudges", description="Target of the chat endpoint")

    # Chat Configuration
    notice_seconds: float = Field(default=5.0, description="How long a failure notice stays visible")
    greeting: str | None = Field(
        default="Hello! I'm your AI investment assistant. How can I help you today?",
        description="Assistant message shown when a chat starts",
    )

    # Enrichment Configuration
    geolocation_timeout_seconds: float = Field(default=5.0, description="Upper bound for one position lookup")
    geolocation_max_age_seconds: float = Field(default=600.0, description="Accepted staleness of a cached position")
    user_agent: str | None = Field(default=None, description="User agent used for device classification")
    latitude: float | None = Field(default=None, description="Static latitude reported as the client position")
    longitude: float | None = Field(default=None, description="Static longitude reported as the client position")
    accuracy: float = Field(default=1000.0, description="Accuracy in meters of the static position")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def has_static_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def get_settings(**overrides: Any) -> Settings:
    """Get client settings.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        Settings instance
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)
