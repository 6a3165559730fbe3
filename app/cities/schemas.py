"""Pydantic schemas for city records, query actions and responses."""

from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

Number = Union[StrictInt, StrictFloat]


def _non_negative(v):
    if v < 0:
        raise ValueError("must not be negative")
    return v


Population = Annotated[Number, AfterValidator(_non_negative)]


class CityBase(BaseModel):
    """Client-supplied city fields."""
    name: str = Field(..., min_length=1)
    population: Population
    area: Number

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v


class CityCreate(CityBase):
    """Schema for creating a city. The id is assigned by the server."""
    model_config = ConfigDict(extra="forbid")


class CityUpdate(CityBase):
    """Full-field update of a city found by id."""
    model_config = ConfigDict(extra="forbid")


class CityNameUpdate(BaseModel):
    """Update of a city found by name."""
    model_config = ConfigDict(extra="forbid")

    population: Population
    area: Number


class City(CityBase):
    """City document returned to clients.

    ``_id`` is only present when the store's internal id is exposed.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int
    internal_id: Optional[str] = Field(default=None, alias="_id")


class CityBatchCreate(BaseModel):
    """Batch insert payload."""
    cities: List[CityCreate]


class CityBatchDelete(BaseModel):
    """Batch delete payload."""
    id: List[int]


class CityDeleteResponse(BaseModel):
    message: str
    deletedCity: City


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Query actions
# ---------------------------------------------------------------------------

FilterValue = Union[StrictStr, StrictInt, StrictFloat]


class Pagination(BaseModel):
    """1-based page and page size. Out-of-range values are clamped, not rejected."""

    page: int = 1
    limit: Optional[int] = Field(default=None, validation_alias=AliasChoices("limit", "itemsPerPage"))

    @field_validator("page", mode="before")
    @classmethod
    def clamp_page(cls, v: Any) -> int:
        return _clamp_positive(v, default=1)

    @field_validator("limit", mode="before")
    @classmethod
    def clamp_limit(cls, v: Any) -> Optional[int]:
        if v is None:
            return None
        return _clamp_positive(v, default=None)


class SortSpec(BaseModel):
    sortBy: List[str] = Field(default_factory=list)
    sortDesc: List[bool] = Field(default_factory=list)


class SearchSpec(BaseModel):
    term: str = ""
    fields: List[str] = Field(default_factory=list)
    startsWith: bool = False
    endsWith: bool = False

    @field_validator("fields", mode="before")
    @classmethod
    def single_field_as_list(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class QuerySpec(BaseModel):
    """Everything a client can ask of the city actions endpoint.

    Omitting ``pagination`` while sending a search term switches the request
    into probe mode.
    """
    model_config = ConfigDict(extra="forbid")

    filter: Dict[str, Union[List[FilterValue], FilterValue]] = Field(default_factory=dict)
    search: Optional[SearchSpec] = None
    sort: SortSpec = Field(default_factory=SortSpec)
    projection: Dict[str, Union[StrictBool, StrictInt]] = Field(default_factory=dict)
    pagination: Optional[Pagination] = None
    id: Optional[int] = None

    @field_validator("filter", mode="before")
    @classmethod
    def filter_values_as_lists(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {k: (vals if isinstance(vals, list) else [vals]) for k, vals in v.items()}
        return v

    @property
    def is_probe(self) -> bool:
        return self.pagination is None and bool(self.search and self.search.term.strip())


def _clamp_positive(v: Any, default: Optional[int]) -> Optional[int]:
    if v is None or v == "":
        return default
    try:
        number = v if isinstance(v, int) and not isinstance(v, bool) else int(float(v))
    except (TypeError, ValueError, OverflowError):
        raise ValueError("must be a finite number")
    return max(number, 1)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class TablePage(BaseModel):
    totalCount: int
    tableData: List[Dict[str, Any]]


class CityActionsResponse(BaseModel):
    """Envelope returned by a full query action."""
    status: int
    message: str
    data: TablePage


class SearchProbe(BaseModel):
    term: str
    fields: List[str]
    startsWith: bool
    endsWith: bool


class SearchProbeResponse(BaseModel):
    search: List[SearchProbe]


class PopulationByName(BaseModel):
    name: str
    totalPopulation: Union[int, float]


class AveragePopulation(BaseModel):
    avgPopulation: float
