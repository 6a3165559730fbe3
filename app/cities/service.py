"""Service layer for the city registry."""

import logging
from contextlib import contextmanager
from typing import List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.cities.fields import INTERNAL_ID_FIELD
from app.cities.predicates import MATCH_ALL
from app.cities.query import QueryTranslator
from app.cities.repository import CityStore
from app.cities.schemas import QuerySpec
from app.core.exceptions import (
    BadRequestException,
    ConflictException,
    NotFoundException,
    StoreException,
)

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(action: str):
    """Turn driver failures into StoreException, logging the detail.

    Duplicate ids become ConflictException: concurrent batch inserts read the
    same max id and the unique index rejects the second writer. That write
    is not retried.
    """
    try:
        yield
    except DuplicateKeyError as e:
        logger.warning(f"Duplicate city id while trying to {action}: {e}")
        raise ConflictException("City id already taken, retry the request") from e
    except PyMongoError as e:
        logger.error(f"Store failure while trying to {action}: {e}", exc_info=True)
        raise StoreException() from e


def _serialize(doc: dict) -> dict:
    if doc and "_id" in doc:
        doc = {**doc, "_id": str(doc["_id"])}
    return doc


class CitiesService:
    """City CRUD, query actions and population statistics."""

    def __init__(self, store: CityStore, translator: Optional[QueryTranslator] = None):
        self.store = store
        self.translator = translator or QueryTranslator()

    @property
    def _projection(self) -> dict:
        return self.translator.visible_projection()

    def _visible(self, doc: dict) -> dict:
        if not self.translator.include_internal_id:
            doc = {k: v for k, v in doc.items() if k != INTERNAL_ID_FIELD}
        return _serialize(doc)

    # ---- query actions ----------------------------------------------------

    async def handle_actions(self, spec: QuerySpec) -> dict:
        """
        Run a query action.

        With a search term and no pagination this is a probe: only whether
        any city starts with / ends with the term is reported. Otherwise the
        matching page is returned inside the status envelope.
        """
        if spec.is_probe:
            return await self.probe(spec)

        compiled = self.translator.compile(spec)
        with store_errors("query cities"):
            rows = await self.store.find(
                compiled.predicate,
                compiled.projection,
                compiled.sort,
                skip=compiled.skip,
                limit=compiled.limit,
            )
            total = await self.store.count(compiled.predicate)
        rows = [_serialize(row) for row in rows]

        return {
            "status": 200,
            "message": "Success" if rows else "No matching cities found",
            "data": {"totalCount": total, "tableData": rows},
        }

    async def probe(self, spec: QuerySpec) -> dict:
        plan = self.translator.compile_probe(spec)
        with store_errors("probe city search"):
            starts = await self.store.exists(plan.starts_with)
            ends = await self.store.exists(plan.ends_with)
        return {
            "search": [
                {
                    "term": plan.term,
                    "fields": plan.fields,
                    "startsWith": starts,
                    "endsWith": ends,
                }
            ]
        }

    # ---- reads ------------------------------------------------------------

    async def list_all(self) -> List[dict]:
        with store_errors("list cities"):
            cities = await self.store.list_all(self._projection)
        return [_serialize(city) for city in cities]

    async def get(self, city_id: int) -> dict:
        with store_errors("read city"):
            city = await self.store.get_by_id(city_id, self._projection)
        if not city:
            raise NotFoundException("City not found")
        return _serialize(city)

    # ---- writes -----------------------------------------------------------

    async def next_id(self) -> int:
        """One past the highest id in use, 1 for an empty registry."""
        current = await self.store.max_id()
        return current + 1 if current is not None else 1

    async def create(self, city: dict) -> dict:
        created = await self.create_many([city])
        return created[0]

    async def create_many(self, cities: List[dict]) -> List[dict]:
        """
        Insert cities with consecutive ids, in input order.

        The starting id is read once, so two batches running at the same time
        can pick overlapping ranges; the unique index makes the later one fail.
        """
        if not cities:
            raise BadRequestException("Request body must be a non-empty array of cities")

        with store_errors("insert cities"):
            start = await self.next_id()
            docs = [{"id": start + offset, **city} for offset, city in enumerate(cities)]
            inserted = await self.store.insert_many(docs)

        logger.info(f"Inserted {len(docs)} cities with ids {start}-{start + len(docs) - 1}")
        return [self._visible(doc) for doc in inserted]

    async def update(self, city_id: int, fields: dict) -> dict:
        with store_errors("update city"):
            city = await self.store.update_by_id(city_id, fields, self._projection)
        if not city:
            raise NotFoundException("City not found")
        return _serialize(city)

    async def update_by_name(self, name: str, fields: dict) -> dict:
        with store_errors("update city by name"):
            city = await self.store.update_by_name(name, fields, self._projection)
        if not city:
            raise NotFoundException("City not found")
        return _serialize(city)

    async def delete(self, city_id: int) -> dict:
        with store_errors("delete city"):
            city = await self.store.delete_by_id(city_id, self._projection)
        if not city:
            raise NotFoundException("City not found")
        return _serialize(city)

    async def delete_many(self, city_ids: List[int]) -> int:
        if not city_ids:
            raise BadRequestException("id must be a non-empty array")
        with store_errors("delete cities"):
            deleted = await self.store.delete_by_ids(city_ids)
        if deleted == 0:
            raise NotFoundException("No cities found with the provided IDs")
        return deleted

    # ---- statistics -------------------------------------------------------

    async def population_by_name(self) -> List[dict]:
        with store_errors("aggregate population"):
            return await self.store.population_by_name()

    async def min_population(self) -> dict:
        with store_errors("find smallest city"):
            city = await self.store.min_population(self._projection)
        if not city:
            raise NotFoundException("No cities found")
        return _serialize(city)

    async def average_population(self) -> float:
        with store_errors("average population"):
            avg = await self.store.average_population()
        if avg is None:
            raise NotFoundException("No cities found")
        return avg

    async def sorted_by_population(self) -> List[dict]:
        with store_errors("sort cities by population"):
            cities = await self.store.find(
                MATCH_ALL,
                self._projection,
                [("population", -1), ("id", 1)],
            )
        return [_serialize(city) for city in cities]

