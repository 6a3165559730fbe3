"""Predicate tree for city queries.

The query translator builds these nodes; each store adapter turns them into
whatever its engine understands. ``to_mongo`` produces a MongoDB filter
document, the in-memory store evaluates the tree directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple, Union


class MatchMode(str, Enum):
    """How a search term is anchored against a field value."""

    EXACT = "exact"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    CONTAINS = "contains"

    @classmethod
    def from_flags(cls, starts_with: bool, ends_with: bool) -> "MatchMode":
        if starts_with and ends_with:
            return cls.EXACT
        if starts_with:
            return cls.PREFIX
        if ends_with:
            return cls.SUFFIX
        return cls.CONTAINS

    def regex(self, term: str) -> str:
        """Anchored, escaped regex source for ``term``."""
        safe = re.escape(term)
        if self is MatchMode.EXACT:
            return f"^{safe}$"
        if self is MatchMode.PREFIX:
            return f"^{safe}"
        if self is MatchMode.SUFFIX:
            return f"{safe}$"
        return safe


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Pattern:
    """Case-insensitive match of ``term`` against a field.

    ``as_string`` matches the string form of the stored value, for numeric
    fields.
    """

    field: str
    term: str
    mode: MatchMode = MatchMode.CONTAINS
    as_string: bool = False

    @property
    def regex(self) -> str:
        return self.mode.regex(self.term)


@dataclass(frozen=True)
class And:
    clauses: Tuple["Predicate", ...] = ()


@dataclass(frozen=True)
class Or:
    clauses: Tuple["Predicate", ...] = ()


Predicate = Union[Equals, Pattern, And, Or]

MATCH_ALL = And()


def all_of(*clauses: Predicate) -> Predicate:
    """AND the clauses together, flattening nested ANDs and dropping match-alls."""
    flat = []
    for clause in clauses:
        if isinstance(clause, And):
            flat.extend(clause.clauses)
        else:
            flat.append(clause)
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))


def any_of(*clauses: Predicate) -> Predicate:
    if len(clauses) == 1:
        return clauses[0]
    return Or(tuple(clauses))


def to_mongo(predicate: Predicate) -> Dict[str, Any]:
    """Compile a predicate tree into a MongoDB filter document."""
    if isinstance(predicate, Equals):
        return {predicate.field: predicate.value}

    if isinstance(predicate, Pattern):
        if predicate.as_string:
            return {
                "$expr": {
                    "$regexMatch": {
                        "input": {"$toString": f"${predicate.field}"},
                        "regex": predicate.regex,
                        "options": "i",
                    }
                }
            }
        return {predicate.field: {"$regex": predicate.regex, "$options": "i"}}

    if isinstance(predicate, And):
        if not predicate.clauses:
            return {}
        if len(predicate.clauses) == 1:
            return to_mongo(predicate.clauses[0])
        return {"$and": [to_mongo(c) for c in predicate.clauses]}

    if isinstance(predicate, Or):
        # An empty OR can never be satisfied
        if not predicate.clauses:
            return {"$expr": False}
        if len(predicate.clauses) == 1:
            return to_mongo(predicate.clauses[0])
        return {"$or": [to_mongo(c) for c in predicate.clauses]}

    raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")
