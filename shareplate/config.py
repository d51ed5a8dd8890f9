"""
Configuration and settings for the SharePlate backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "https://ephemeral-chebakia-89a6e4.netlify.app",
]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service.

    Field names double as (case-insensitive) environment variable names,
    e.g. ``PORT``, ``MONGODB_URI``, ``FIREBASE_SERVICE_KEY``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")

    # MongoDB. Either a full URI, or the Atlas credentials it is built from.
    mongodb_uri: Optional[str] = Field(default=None)
    db_user: Optional[str] = Field(default=None)
    db_pass: Optional[str] = Field(default=None)
    db_host: str = Field(default="cluster0.gikxdnx.mongodb.net")
    mongodb_db_name: str = Field(default="foodDB")

    # Firebase service account JSON, base64 encoded
    firebase_service_key: Optional[str] = Field(default=None)

    # JSON list in the environment, e.g. ALLOWED_ORIGINS='["https://a.example"]'
    allowed_origins: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    featured_limit: int = Field(default=6, ge=1)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="SHAREPLATE_USE_IN_MEMORY_BACKENDS"
    )

    def resolved_mongodb_uri(self) -> Optional[str]:
        """Return the explicit URI, or build the Atlas one from credentials."""
        if self.mongodb_uri:
            return self.mongodb_uri
        if self.db_user and self.db_pass:
            return (
                f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_pass)}"
                f"@{self.db_host}/?appName=Cluster0"
            )
        return None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
