"""City record stores.

``CityStore`` is the interface the service depends on. ``MongoCityStore``
runs against a Motor collection; ``app.cities.memory_store`` holds the
in-process implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from app.cities.predicates import Predicate, to_mongo

logger = logging.getLogger(__name__)

Number = Union[int, float]


class CityStore(ABC):
    """Repository interface for city documents."""

    @abstractmethod
    async def ping(self) -> bool:
        """Whether the backing database answers."""

    @abstractmethod
    async def find(
        self,
        predicate: Predicate,
        projection: Dict[str, int],
        sort: Sequence[Tuple[str, int]],
        skip: int = 0,
        limit: int = 0,
    ) -> List[dict]:
        """Matching documents, projected, sorted, then paged."""

    @abstractmethod
    async def count(self, predicate: Predicate) -> int:
        """Number of documents matching the predicate, ignoring paging."""

    @abstractmethod
    async def exists(self, predicate: Predicate) -> bool:
        """Whether at least one document matches."""

    @abstractmethod
    async def list_all(self, projection: Dict[str, int]) -> List[dict]:
        """Every city ordered by id."""

    @abstractmethod
    async def get_by_id(self, city_id: int, projection: Dict[str, int]) -> Optional[dict]:
        pass

    @abstractmethod
    async def max_id(self) -> Optional[int]:
        """Highest assigned city id, None for an empty store."""

    @abstractmethod
    async def insert_many(self, docs: List[dict]) -> List[dict]:
        """Insert in order and return the stored documents, ``_id`` included.

        Raises DuplicateKeyError when an id is taken.
        """

    @abstractmethod
    async def update_by_id(self, city_id: int, fields: dict, projection: Dict[str, int]) -> Optional[dict]:
        """Apply ``fields`` and return the updated document."""

    @abstractmethod
    async def update_by_name(self, name: str, fields: dict, projection: Dict[str, int]) -> Optional[dict]:
        """Apply ``fields`` to the first city with this exact name."""

    @abstractmethod
    async def delete_by_id(self, city_id: int, projection: Dict[str, int]) -> Optional[dict]:
        """Delete and return the removed document."""

    @abstractmethod
    async def delete_by_ids(self, city_ids: List[int]) -> int:
        """Delete all listed ids, returning how many were removed."""

    @abstractmethod
    async def population_by_name(self) -> List[dict]:
        """``{"name", "totalPopulation"}`` per distinct name, ordered by name."""

    @abstractmethod
    async def min_population(self, projection: Dict[str, int]) -> Optional[dict]:
        pass

    @abstractmethod
    async def average_population(self) -> Optional[Number]:
        pass


class MongoCityStore(CityStore):
    """City store backed by a Motor collection."""

    def __init__(self, collection):
        self.collection = collection

    async def ping(self):
        try:
            await self.collection.database.command("ping")
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
        return True

    async def find(self, predicate, projection, sort, skip=0, limit=0):
        cursor = self.collection.find(to_mongo(predicate), projection or None)
        if sort:
            cursor = cursor.sort(list(sort))
        cursor = cursor.skip(skip).limit(limit)
        return await cursor.to_list(length=limit or None)

    async def count(self, predicate):
        return await self.collection.count_documents(to_mongo(predicate))

    async def exists(self, predicate):
        doc = await self.collection.find_one(to_mongo(predicate), {"_id": 1})
        return doc is not None

    async def list_all(self, projection):
        cursor = self.collection.find({}, projection or None).sort("id", 1)
        return await cursor.to_list(length=None)

    async def get_by_id(self, city_id, projection):
        return await self.collection.find_one({"id": city_id}, projection or None)

    async def max_id(self):
        doc = await self.collection.find_one({}, {"id": 1}, sort=[("id", DESCENDING)])
        return int(doc["id"]) if doc else None

    async def insert_many(self, docs):
        stored = [dict(doc) for doc in docs]
        # insert_many adds _id to the dicts it is given
        await self.collection.insert_many(stored, ordered=True)
        return stored

    async def update_by_id(self, city_id, fields, projection):
        return await self.collection.find_one_and_update(
            {"id": city_id},
            {"$set": fields},
            projection=projection or None,
            return_document=ReturnDocument.AFTER,
        )

    async def update_by_name(self, name, fields, projection):
        return await self.collection.find_one_and_update(
            {"name": name},
            {"$set": fields},
            projection=projection or None,
            sort=[("id", 1)],
            return_document=ReturnDocument.AFTER,
        )

    async def delete_by_id(self, city_id, projection):
        return await self.collection.find_one_and_delete({"id": city_id}, projection=projection or None)

    async def delete_by_ids(self, city_ids):
        result = await self.collection.delete_many({"id": {"$in": list(city_ids)}})
        return result.deleted_count

    async def population_by_name(self):
        pipeline = [
            {"$group": {"_id": "$name", "totalPopulation": {"$sum": "$population"}}},
            {"$sort": {"_id": 1}},
            {"$project": {"_id": 0, "name": "$_id", "totalPopulation": 1}},
        ]
        return await self.collection.aggregate(pipeline).to_list(length=None)

    async def min_population(self, projection):
        return await self.collection.find_one({}, projection or None, sort=[("population", 1), ("id", 1)])

    async def average_population(self):
        pipeline = [{"$group": {"_id": None, "avgPopulation": {"$avg": "$population"}}}]
        result = await self.collection.aggregate(pipeline).to_list(length=1)
        if not result:
            return None
        return result[0]["avgPopulation"]
