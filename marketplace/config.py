"""
Configuration and settings for the marketplace backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

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

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)
    # "tables" keeps one table per entity; "kv" keeps every record in a
    # single prefix-namespaced key/value table.
    database_layout: Literal["tables", "kv"] = Field(default="tables")

    # Identity
    allowed_email_domain: str = Field(default="srmist.edu.in")
    auth_secret_key: Optional[str] = Field(default=None)
    access_token_ttl_seconds: int = Field(default=60 * 60 * 24 * 7)

    # S3-compatible object storage for product images
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    image_url_ttl_seconds: int = Field(default=60 * 60 * 24 * 365)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="MARKETPLACE_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
