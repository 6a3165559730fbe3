"""Query translator for the city actions endpoint.

Turns a validated ``QuerySpec`` into a store-neutral ``CompiledQuery``:
predicate tree, projection, sort order and skip/limit. Nothing here talks to
a store, so every policy below can be tested on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from app.cities.fields import (
    CITY_FIELD_TYPES,
    DEFAULT_SEARCH_FIELDS,
    DEFAULT_SORT_FIELD,
    INTERNAL_ID_FIELD,
    FieldType,
    is_numeric,
    parse_number,
)
from app.cities.predicates import (
    MATCH_ALL,
    Equals,
    MatchMode,
    Pattern,
    Predicate,
    all_of,
    any_of,
)
from app.cities.schemas import Pagination, QuerySpec, SearchSpec, SortSpec
from app.core.exceptions import BadRequestException

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1

# Largest skip a BSON int64 can carry
MAX_SKIP = 2**63 - 1

SortOrder = List[Tuple[str, int]]


@dataclass(frozen=True)
class CompiledQuery:
    predicate: Predicate
    projection: Dict[str, int]
    sort: SortOrder
    skip: int
    limit: int
    page: int = 1


@dataclass(frozen=True)
class SearchProbePlan:
    """Two existence checks standing in for a full search."""
    term: str
    fields: List[str]
    starts_with: Predicate
    ends_with: Predicate


@dataclass
class QueryTranslator:
    """Compiles query specifications against a field-type registry."""

    field_types: Dict[str, FieldType] = field(default_factory=lambda: dict(CITY_FIELD_TYPES))
    default_page_size: int = 10
    max_page_size: int = 100
    include_internal_id: bool = False

    # ---- filter -----------------------------------------------------------

    def compile_filter(self, filter_spec: Dict[str, Sequence]) -> Predicate:
        """OR the values of each field, AND the fields together."""
        per_field = []
        for name, values in (filter_spec or {}).items():
            self._require_field(name, "filter")
            if not values:
                continue
            per_field.append(any_of(*(self._filter_value(name, value) for value in values)))
        return all_of(*per_field) if per_field else MATCH_ALL

    def _filter_value(self, name: str, value) -> Predicate:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise BadRequestException(f"Invalid filter value for '{name}': {value!r}")

        numeric_field = is_numeric(name, self.field_types)
        number = parse_number(value)
        if numeric_field and number is not None:
            return Equals(name, number)

        text = str(value)
        if not text.strip():
            raise BadRequestException(f"Invalid filter value for '{name}': empty string")
        return Pattern(name, text, MatchMode.CONTAINS, as_string=numeric_field)

    # ---- search -----------------------------------------------------------

    def search_fields(self, search: SearchSpec) -> List[str]:
        names = list(search.fields) or list(DEFAULT_SEARCH_FIELDS)
        for name in names:
            self._require_field(name, "searchFields")
        return names

    def compile_search(self, search: Optional[SearchSpec], mode: Optional[MatchMode] = None) -> Predicate:
        """Match the term against any of the search fields.

        ``mode`` overrides the anchoring chosen by the startsWith/endsWith
        flags; probe mode uses it to test prefix and suffix separately.
        """
        if search is None or not search.term.strip():
            return MATCH_ALL
        if mode is None:
            mode = MatchMode.from_flags(search.startsWith, search.endsWith)
        term = search.term
        return any_of(*(
            Pattern(name, term, mode, as_string=is_numeric(name, self.field_types))
            for name in self.search_fields(search)
        ))

    # ---- sort -------------------------------------------------------------

    def compile_sort(self, sort: Optional[SortSpec]) -> SortOrder:
        """Sort keys in evaluation order, most significant first.

        With two or more fields the listed order is reversed: the last field
        listed is the primary key and the first one breaks the final ties.
        """
        if sort is None or not sort.sortBy:
            return [(DEFAULT_SORT_FIELD, ASCENDING)]

        if len(sort.sortDesc) > len(sort.sortBy):
            raise BadRequestException("Invalid sort: sortDesc has more entries than sortBy")

        seen = set()
        listed = []
        for index, name in enumerate(sort.sortBy):
            self._require_field(name, "sortBy")
            if name in seen:
                raise BadRequestException(f"Invalid sort: '{name}' listed more than once")
            seen.add(name)
            desc = sort.sortDesc[index] if index < len(sort.sortDesc) else False
            listed.append((name, DESCENDING if desc else ASCENDING))

        if len(listed) == 1:
            return listed
        return list(reversed(listed))

    # ---- projection -------------------------------------------------------

    def compile_projection(self, projection: Optional[Dict[str, object]]) -> Dict[str, int]:
        """Normalize to 0/1 and resolve mixed projections in favour of inclusion."""
        fields = {}
        for name, flag in (projection or {}).items():
            self._require_field(name, "projection")
            if flag is True or flag == 1:
                fields[name] = 1
            elif flag is False or flag == 0:
                fields[name] = 0
            else:
                raise BadRequestException(f"Invalid projection value for '{name}': must be 0 or 1")

        values = set(fields.values())
        if values == {0, 1}:
            fields = {name: flag for name, flag in fields.items() if flag == 1}

        if not self.include_internal_id:
            fields[INTERNAL_ID_FIELD] = 0
        return fields

    # ---- pagination -------------------------------------------------------

    def paginate(self, pagination: Optional[Pagination]) -> Tuple[int, int, int]:
        """Return (page, skip, limit) with out-of-range values clamped."""
        page = max(pagination.page if pagination else 1, 1)
        limit = pagination.limit if pagination and pagination.limit else self.default_page_size
        limit = min(max(limit, 1), self.max_page_size)
        # skip is sent to the store as a 64-bit integer
        page = min(page, MAX_SKIP // limit + 1)
        return page, (page - 1) * limit, limit

    # ---- whole specification ----------------------------------------------

    def predicate_for(self, spec: QuerySpec, search: Optional[Predicate] = None) -> Predicate:
        clauses = [self.compile_filter(spec.filter)]
        clauses.append(self.compile_search(spec.search) if search is None else search)
        if spec.id is not None:
            clauses.append(Equals("id", spec.id))
        return all_of(*clauses)

    def compile(self, spec: QuerySpec) -> CompiledQuery:
        page, skip, limit = self.paginate(spec.pagination)
        compiled = CompiledQuery(
            predicate=self.predicate_for(spec),
            projection=self.compile_projection(spec.projection),
            sort=self.compile_sort(spec.sort),
            skip=skip,
            limit=limit,
            page=page,
        )
        logger.debug(f"Compiled city query: {compiled}")
        return compiled

    def compile_probe(self, spec: QuerySpec) -> SearchProbePlan:
        search = spec.search
        if search is None or not search.term.strip():
            raise BadRequestException("Invalid search: a search term is required")
        return SearchProbePlan(
            term=search.term,
            fields=self.search_fields(search),
            starts_with=self.predicate_for(spec, self.compile_search(search, MatchMode.PREFIX)),
            ends_with=self.predicate_for(spec, self.compile_search(search, MatchMode.SUFFIX)),
        )

    def visible_projection(self) -> Dict[str, int]:
        """Projection for paths that return whole records."""
        return self.compile_projection(None)

    def _require_field(self, name: str, where: str) -> None:
        if name not in self.field_types:
            raise BadRequestException(f"Invalid {where}: unknown field '{name}'")
