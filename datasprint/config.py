"""
Configuration and settings for the contest backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible object storage
    storage_endpoint: Optional[str] = Field(default=None)
    storage_region: Optional[str] = Field(default=None)
    storage_access_key_id: Optional[str] = Field(default=None)
    storage_secret_access_key: Optional[str] = Field(default=None)
    storage_public_base_url: Optional[str] = Field(default=None)
    datasets_bucket: str = Field(default="datasets")
    submissions_bucket: str = Field(default="submissions")

    # Auth
    jwt_secret: str = Field(default="datasprint-development-secret-change-me")
    jwt_expires_hours: int = Field(default=24, ge=1)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="DATASPRINT_USE_IN_MEMORY_BACKENDS"
    )

    # Dashboard caching and Phase 2 release
    round_cache_ttl_seconds: int = Field(default=30, ge=0)
    signed_url_expires_seconds: int = Field(default=3600, ge=60)
    signed_url_cache_ttl_seconds: int = Field(default=55 * 60, ge=0)
    final_dataset_window_seconds: int = Field(default=45 * 60, ge=0)
    cache_cleanup_interval_seconds: float = Field(default=5 * 60, gt=0)

    slow_request_seconds: float = Field(default=1.0)

    @model_validator(mode="after")
    def _check_signed_url_ttl(self) -> "Settings":
        # A cached URL must expire before the signature it carries.
        if self.signed_url_cache_ttl_seconds >= self.signed_url_expires_seconds:
            raise ValueError(
                "signed_url_cache_ttl_seconds must be shorter than "
                "signed_url_expires_seconds"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
