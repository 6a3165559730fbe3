"""In-memory implementation of CityStore.

Evaluates predicate trees in Python with the same matching rules MongoDB
applies to the compiled filter. Used for local runs (``STORE_BACKEND=memory``)
and tests.
"""

import re
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from app.cities.fields import number_to_string
from app.cities.predicates import And, Equals, Or, Pattern, Predicate
from app.cities.repository import CityStore


def evaluate(predicate: Predicate, doc: dict) -> bool:
    """Whether ``doc`` satisfies ``predicate``."""
    if isinstance(predicate, Equals):
        value = doc.get(predicate.field)
        if isinstance(value, bool) or value is None:
            return False
        return value == predicate.value

    if isinstance(predicate, Pattern):
        value = doc.get(predicate.field)
        if predicate.as_string:
            if value is None or isinstance(value, bool):
                return False
            value = number_to_string(value) if isinstance(value, (int, float)) else str(value)
        elif not isinstance(value, str):
            return False
        return re.search(predicate.regex, value, re.IGNORECASE) is not None

    if isinstance(predicate, And):
        return all(evaluate(c, doc) for c in predicate.clauses)

    if isinstance(predicate, Or):
        return any(evaluate(c, doc) for c in predicate.clauses)

    raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")


def project(doc: dict, projection: Dict[str, int]) -> dict:
    """Apply a MongoDB-style projection. ``_id`` follows its own flag."""
    projection = projection or {}
    keep_id = projection.get("_id", 1) == 1
    fields = {k: v for k, v in projection.items() if k != "_id"}

    if fields and all(v == 1 for v in fields.values()):
        out = {k: doc[k] for k in fields if k in doc}
    else:
        excluded = {k for k, v in fields.items() if v == 0}
        out = {k: v for k, v in doc.items() if k not in excluded and k != "_id"}

    if keep_id and "_id" in doc:
        out = {"_id": doc["_id"], **out}
    return out


def _sort_key(value):
    # MongoDB orders missing/null before numbers before strings
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def sort_documents(docs: List[dict], sort) -> List[dict]:
    """Stable multi-key sort, most significant key first in ``sort``."""
    ordered = list(docs)
    for field, direction in reversed(list(sort)):
        ordered.sort(key=lambda d: _sort_key(d.get(field)), reverse=direction < 0)
    return ordered


class InMemoryCityStore(CityStore):
    """Dict-backed city store, keyed by city id."""

    def __init__(self, docs: Optional[List[dict]] = None):
        self._docs: Dict[int, dict] = {}
        for doc in docs or []:
            self._store(dict(doc))

    def _store(self, doc: dict) -> None:
        if doc["id"] in self._docs:
            raise DuplicateKeyError(f"E11000 duplicate key error dup key: {{ id: {doc['id']} }}")
        doc.setdefault("_id", ObjectId())
        self._docs[doc["id"]] = doc

    async def ping(self):
        return True

    def _ordered(self) -> List[dict]:
        # Natural order is insertion order, like an unindexed collection scan
        return list(self._docs.values())

    async def find(self, predicate, projection, sort, skip=0, limit=0):
        matched = [d for d in self._ordered() if evaluate(predicate, d)]
        if sort:
            matched = sort_documents(matched, sort)
        matched = matched[skip:]
        if limit:
            matched = matched[:limit]
        return [project(d, projection) for d in matched]

    async def count(self, predicate):
        return sum(1 for d in self._ordered() if evaluate(predicate, d))

    async def exists(self, predicate):
        return any(evaluate(predicate, d) for d in self._ordered())

    async def list_all(self, projection):
        return [project(d, projection) for d in sort_documents(self._ordered(), [("id", 1)])]

    async def get_by_id(self, city_id, projection):
        doc = self._docs.get(city_id)
        return project(doc, projection) if doc else None

    async def max_id(self):
        return max(self._docs) if self._docs else None

    async def insert_many(self, docs):
        # ordered=True semantics: everything before a duplicate is kept
        stored = []
        for doc in docs:
            doc = dict(doc)
            self._store(doc)
            stored.append(dict(doc))
        return stored

    async def update_by_id(self, city_id, fields, projection):
        doc = self._docs.get(city_id)
        if doc is None:
            return None
        doc.update(fields)
        return project(doc, projection)

    async def update_by_name(self, name, fields, projection):
        for doc in sort_documents(self._ordered(), [("id", 1)]):
            if doc.get("name") == name:
                doc.update(fields)
                return project(doc, projection)
        return None

    async def delete_by_id(self, city_id, projection):
        doc = self._docs.pop(city_id, None)
        return project(doc, projection) if doc else None

    async def delete_by_ids(self, city_ids):
        removed = 0
        for city_id in set(city_ids):
            if self._docs.pop(city_id, None) is not None:
                removed += 1
        return removed

    async def population_by_name(self):
        totals: Dict[str, float] = {}
        for doc in self._ordered():
            totals[doc["name"]] = totals.get(doc["name"], 0) + doc.get("population", 0)
        return [{"name": name, "totalPopulation": totals[name]} for name in sorted(totals)]

    async def min_population(self, projection):
        docs = sort_documents(self._ordered(), [("population", 1), ("id", 1)])
        return project(docs[0], projection) if docs else None

    async def average_population(self):
        if not self._docs:
            return None
        values = [d.get("population", 0) for d in self._docs.values()]
        return sum(values) / len(values)
