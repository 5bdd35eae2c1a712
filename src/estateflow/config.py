"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class StoreBackend(str, Enum):
    memory = "memory"
    redis = "redis"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Document store
    STORE_BACKEND: StoreBackend = StoreBackend.memory
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "estateflow"

    # Photo blob cleanup (HTTP DELETE against photo URLs)
    PHOTO_CLEANUP_ENABLED: bool = False
    PHOTO_CLEANUP_TIMEOUT: float = 10.0

    # Storage layout for nested customer collections ("hierarchical" or "flattened")
    STORAGE_LAYOUT: str = "flattened"
    CUSTOMERS_COLLECTION: str = "customers"
    SETTINGS_COLLECTION: str = "settings"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
