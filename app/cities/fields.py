"""Field-type registry for city documents.

Filter and search compilation dispatch on these types instead of asking the
store for its schema at request time.
"""

from enum import Enum
from typing import Dict, Optional, Union


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"


CITY_FIELD_TYPES: Dict[str, FieldType] = {
    "id": FieldType.NUMBER,
    "name": FieldType.STRING,
    "population": FieldType.NUMBER,
    "area": FieldType.NUMBER,
}

DEFAULT_SEARCH_FIELDS = ("name",)
DEFAULT_SORT_FIELD = "name"

# Store-assigned document key, never part of the City contract
INTERNAL_ID_FIELD = "_id"


def is_numeric(field: str, registry: Dict[str, FieldType] = CITY_FIELD_TYPES) -> bool:
    return registry.get(field) is FieldType.NUMBER


def parse_number(value) -> Optional[Union[int, float]]:
    """Return value as a number, or None when it does not parse as one.

    Booleans are not numbers here, and neither are blank strings.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    # Digit separators ("1_000") are text here, not numbers
    if "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    # "nan"/"inf" parse as floats but never equal a stored value
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def number_to_string(value) -> str:
    """String form of a stored number, matching MongoDB's $toString for whole doubles."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
