"""Core module - config, database, exceptions, logging."""

from app.core.config import get_settings, Settings
from app.core.database import Database
from app.core.exceptions import (
    AppException,
    NotFoundException,
    BadRequestException,
    ConflictException,
    StoreException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "AppException",
    "NotFoundException",
    "BadRequestException",
    "ConflictException",
    "StoreException",
]
