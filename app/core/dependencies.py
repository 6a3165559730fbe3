"""
Common dependencies for FastAPI routes.
"""

from functools import lru_cache

from app.cities.memory_store import InMemoryCityStore
from app.cities.query import QueryTranslator
from app.cities.repository import CityStore, MongoCityStore
from app.cities.service import CitiesService
from app.core.config import get_settings
from app.core.database import Database


@lru_cache
def _memory_store() -> InMemoryCityStore:
    """Process-wide in-memory store, shared by every request."""
    return InMemoryCityStore()


def get_city_store() -> CityStore:
    """
    Dependency returning the configured city store.

    STORE_BACKEND=memory keeps cities in-process; anything else uses the
    Mongo collection opened at startup.
    """
    settings = get_settings()
    if settings.STORE_BACKEND == "memory":
        return _memory_store()
    return MongoCityStore(Database.get_collection(settings.CITIES_COLLECTION))


def get_query_translator() -> QueryTranslator:
    settings = get_settings()
    return QueryTranslator(
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
        include_internal_id=settings.EXPOSE_INTERNAL_ID,
    )


def get_cities_service() -> CitiesService:
    """Dependency building the cities service for a request."""
    return CitiesService(get_city_store(), get_query_translator())
