"""Centralized configuration for searchplan using Pydantic Settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``SEARCHPLAN_*`` environment variables.

    Settings are passed explicitly to the engine; nothing reads them from a
    process-wide singleton.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCHPLAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Analysis
    default_analyzer: str = Field(
        default="standard",
        description="Analyzer used for text fields without an explicit analyzer in the index mapping",
    )

    # Search defaults
    search_size: int = Field(default=10, ge=0, description="Hits returned when a search does not set a size")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unknown log level '{value}'"
            raise ValueError(msg)
        return normalized.lower()

    @field_validator("default_analyzer")
    @classmethod
    def _normalize_analyzer(cls, value: str) -> str:
        return value.strip().lower()
