"""
Configuration and settings for the PK55 API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service.

    Every field is read from the environment variable of the same name
    (case-insensitive), e.g. ``DATABASE_URL`` or ``JWT_SECRET``.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Auth
    jwt_secret: str = Field(default="your-secret-key-change-in-production")
    jwt_expires_hours: int = Field(default=24)
    password_salt_rounds: int = Field(default=10, ge=4, le=31)

    # S3-compatible media host for the image gallery
    media_endpoint: Optional[str] = Field(default=None)
    media_region: Optional[str] = Field(default=None)
    media_bucket: Optional[str] = Field(default=None)
    media_public_base_url: Optional[str] = Field(default=None)
    media_folder: str = Field(default="pk55")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Uploads
    max_upload_bytes: int = Field(default=5 * 1024 * 1024)

    cors_origins: list[str] = Field(default=["*"])

    # Background jobs
    discount_scheduler_enabled: bool = Field(default=True)

    log_level: str = Field(default="INFO")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
