"""Settings module for docschema-mcp."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment variables:
        DOCSCHEMA_BACKEND: Document store backend, firestore or memory (default: firestore)
        DOCSCHEMA_PROJECT_ID: Google Cloud project (default: client default)
        DOCSCHEMA_DATABASE: Firestore database id (default: client default)
        DOCSCHEMA_SCHEMAS_COLLECTION: Meta-collection for custom fields (default: _schemas)
        DOCSCHEMA_BACKUPS_COLLECTION: Collection for backup snapshots (default: _backups)
        DOCSCHEMA_SAMPLE_SIZE: Documents sampled for field detection (default: 50)
        DOCSCHEMA_ANALYSIS_LIMIT: Documents read per needs analysis (default: 100)
        DOCSCHEMA_NORMALIZE_FETCH_LIMIT: Documents processed per normalization (default: 1000)
        DOCSCHEMA_BATCH_SIZE: Default normalization batch size (default: 50)
        DOCSCHEMA_BATCH_PAUSE: Seconds to pause between batches (default: 0.1)
        DOCSCHEMA_RECENT_FIELD: Creation timestamp field (default: createdAt)
        DOCSCHEMA_UPDATED_FIELD: Update timestamp field (default: updatedAt)
        DOCSCHEMA_LOG_LEVEL: Logging level (default: INFO)
    """

    model_config = SettingsConfigDict(env_prefix="DOCSCHEMA_")

    backend: Literal["firestore", "memory"] = "firestore"
    project_id: str | None = None
    database: str | None = None
    schemas_collection: str = "_schemas"
    backups_collection: str = "_backups"
    sample_size: int = Field(default=50, ge=1)
    analysis_limit: int = Field(default=100, ge=1)
    normalize_fetch_limit: int = Field(default=1000, ge=1)
    batch_size: int = Field(default=50, ge=1)
    batch_pause: float = Field(default=0.1, ge=0)
    recent_field: str = "createdAt"
    updated_field: str = "updatedAt"
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance.

    Settings are read from environment variables on first call and cached.
    Use get_settings.cache_clear() in tests to reset.

    Returns:
        Cached Settings instance.

    Raises:
        ValidationError: If an environment variable has an invalid value.
    """
    return Settings()
