"""
Pytest configuration and shared fixtures.

HTTP tests run the real app against an InMemoryCityStore injected through
a dependency override, so no MongoDB server is needed.
"""

import os
from typing import Generator

import pytest

os.environ.setdefault("STORE_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from app.cities.memory_store import InMemoryCityStore  # noqa: E402
from app.cities.query import QueryTranslator  # noqa: E402
from app.cities.service import CitiesService  # noqa: E402
from app.core.dependencies import get_cities_service  # noqa: E402
from app.main import app  # noqa: E402


SAMPLE_CITIES = [
    {"id": 1, "name": "New York", "population": 8336817, "area": 783.8},
    {"id": 2, "name": "York", "population": 208200, "area": 271.9},
    {"id": 3, "name": "York City", "population": 45000, "area": 12.5},
    {"id": 4, "name": "Boston", "population": 100, "area": 232.1},
    {"id": 5, "name": "Austin", "population": 100, "area": 771.4},
    {"id": 6, "name": "Denver", "population": 715522, "area": 401.2},
    {"id": 7, "name": "Albany", "population": 99224, "area": 56.8},
]


@pytest.fixture
def cities() -> list[dict]:
    return [dict(c) for c in SAMPLE_CITIES]


@pytest.fixture
def store(cities) -> InMemoryCityStore:
    return InMemoryCityStore(cities)


@pytest.fixture
def empty_store() -> InMemoryCityStore:
    return InMemoryCityStore()


@pytest.fixture
def translator() -> QueryTranslator:
    return QueryTranslator()


@pytest.fixture
def service(store, translator) -> CitiesService:
    return CitiesService(store, translator)


@pytest.fixture
def client(service) -> Generator[TestClient, None, None]:
    """FastAPI test client whose routes use the fixture store."""
    app.dependency_overrides[get_cities_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def empty_client(empty_store, translator) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_cities_service] = lambda: CitiesService(empty_store, translator)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def internal_id_client(store) -> Generator[TestClient, None, None]:
    """Test client configured as with EXPOSE_INTERNAL_ID=true."""
    service = CitiesService(store, QueryTranslator(include_internal_id=True))
    app.dependency_overrides[get_cities_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
