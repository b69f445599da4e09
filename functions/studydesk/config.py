"""
Configuration and settings for the StudyDesk backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Document store (any SQLAlchemy URL; unset means in-memory)
    database_url: Optional[str] = Field(default=None)

    # Firebase service account, base64-encoded JSON
    firebase_service_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="STUDYDESK_USE_IN_MEMORY_BACKENDS"
    )
    dev_tokens: dict[str, dict] = Field(
        default_factory=dict, validation_alias="STUDYDESK_DEV_TOKENS"
    )

    # Reject requests whose `email` differs from the verified token's email.
    enforce_owner_match: bool = Field(
        default=False, validation_alias="STUDYDESK_ENFORCE_OWNER_MATCH"
    )

    stats_workers: int = Field(
        default=5, ge=1, validation_alias="STUDYDESK_STATS_WORKERS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
