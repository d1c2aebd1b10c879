"""
Application configuration management using Pydantic Settings.
All settings are loaded from environment variables.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # LLM Provider Configuration
    # =========================================================================
    openai_api_key: str = Field(default="")
    openai_base_url: str | None = Field(default=None)

    # =========================================================================
    # Audio Processing Configuration
    # =========================================================================
    whisper_model: str = Field(default="whisper-1")
    recording_max_ms: int = Field(default=60_000)
    recording_tick_ms: int = Field(default=100)
    capture_runtime: Literal["native", "browser"] = Field(default="native")

    # =========================================================================
    # Receipt Parsing Configuration
    # =========================================================================
    receipt_model_mini: str = Field(default="gpt-4o-mini")
    receipt_model_full: str = Field(default="gpt-4o")
    receipt_max_tokens: int = Field(default=1000)
    receipt_parse_url: str = Field(
        default="http://localhost:8000/api/v1/receipts/parse"
    )
    max_image_bytes: int = Field(default=10 * 1024 * 1024)

    # Picker constraints applied before encoding
    image_aspect_width: int = Field(default=4)
    image_aspect_height: int = Field(default=3)
    image_quality: float = Field(default=0.8, ge=0.0, le=1.0)

    # =========================================================================
    # Network
    # =========================================================================
    request_timeout_seconds: float = Field(default=15.0)

    # =========================================================================
    # Rate Limiting (receipt parsing service)
    # =========================================================================
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_window_ms: int = Field(default=60_000)
    rate_limit_max_requests: int = Field(default=50)

    # =========================================================================
    # Extraction & Review
    # =========================================================================
    confidence_threshold: float = Field(default=0.7)
    extraction_cache_size: int = Field(default=1024)
    default_currency: str = Field(default="USD")
    default_locale: str = Field(default="en-US")

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="json")

    # =========================================================================
    # Application Settings
    # =========================================================================
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )
    service_version: str = Field(default="2.0.0")

    @property
    def rate_limit_window_seconds(self) -> float:
        """Rate limit window expressed in seconds."""
        return self.rate_limit_window_ms / 1000


# Global settings instance
settings = Settings()
