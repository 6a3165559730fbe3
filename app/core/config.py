"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "City Registry API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "city_registry"
    CITIES_COLLECTION: str = "cities"

    # "memory" keeps records in-process (local runs, tests)
    STORE_BACKEND: Literal["mongo", "memory"] = "mongo"

    # Query actions
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100
    EXPOSE_INTERNAL_ID: bool = False

    # Requests
    MAX_REQUEST_BODY_BYTES: int = 1_000_000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"



@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
