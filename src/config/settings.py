"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO")

    # HTTP listener
    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP/WebSocket server.")
    port: int = Field(default=8080, description="Listen port for the HTTP/WebSocket server.")

    public_base_url: str | None = Field(
        default=None,
        description=(
            "Public base URL for Twilio callbacks (e.g. https://<ngrok>.ngrok-free.app). "
            "Falls back to the request Host header."
        ),
    )

    # ElevenLabs Conversational AI
    elevenlabs_api_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_request_timeout: float = Field(default=10.0, gt=0)
    elevenlabs_ws_open_timeout: float = Field(default=10.0, gt=0)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
