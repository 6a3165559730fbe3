"""API routes for the city registry."""

from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, status

from app.cities.schemas import (
    AveragePopulation,
    City,
    CityActionsResponse,
    CityBatchCreate,
    CityBatchDelete,
    CityCreate,
    CityDeleteResponse,
    CityNameUpdate,
    CityUpdate,
    MessageResponse,
    PopulationByName,
    QuerySpec,
    SearchProbeResponse,
    SearchSpec,
)
from app.cities.service import CitiesService
from app.core.dependencies import get_cities_service

router = APIRouter(tags=["Cities"])


# ---- collection -------------------------------------------------------------

@router.get("/cities", response_model=List[City], response_model_exclude_none=True)
async def get_all_cities(service: CitiesService = Depends(get_cities_service)):
    """List every city, ordered by id."""
    return await service.list_all()


@router.post(
    "/cities",
    response_model=List[City],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_cities(
    payload: CityBatchCreate,
    service: CitiesService = Depends(get_cities_service),
):
    """
    Create several cities at once.

    Ids continue from the highest existing id, in the order given.
    """
    return await service.create_many([city.model_dump() for city in payload.cities])


@router.delete("/cities", response_model=MessageResponse)
async def delete_cities(
    payload: CityBatchDelete,
    service: CitiesService = Depends(get_cities_service),
):
    """Delete every city whose id is listed. 404 when none of them exist."""
    deleted = await service.delete_many(payload.id)
    return MessageResponse(message=f"{deleted} cities deleted successfully")


@router.post(
    "/cities/actions",
    response_model=Union[CityActionsResponse, SearchProbeResponse],
)
async def handle_city_actions(
    spec: Optional[QuerySpec] = Body(default=None),
    search: Optional[str] = Query(None, description="Search term"),
    search_fields: Optional[List[str]] = Query(None, alias="searchFields", description="Fields to search"),
    starts_with: bool = Query(False, alias="startsWith"),
    ends_with: bool = Query(False, alias="endsWith"),
    service: CitiesService = Depends(get_cities_service),
):
    """
    Filter, search, sort, project and paginate cities in one request.

    Search may come in the body or as query parameters; the body wins.
    Sending a search term without ``pagination`` only reports whether any
    city starts with and ends with the term.
    """
    spec = spec or QuerySpec()
    if spec.search is None and search:
        spec = spec.model_copy(update={
            "search": SearchSpec(
                term=search,
                fields=search_fields or [],
                startsWith=starts_with,
                endsWith=ends_with,
            )
        })
    return await service.handle_actions(spec)


# ---- statistics -------------------------------------------------------------

@router.get("/cities/stats/total-population", response_model=List[PopulationByName])
async def get_total_population_by_city(service: CitiesService = Depends(get_cities_service)):
    """Population summed per city name."""
    return await service.population_by_name()


@router.get("/cities/stats/min-population", response_model=City, response_model_exclude_none=True)
async def get_city_with_min_population(service: CitiesService = Depends(get_cities_service)):
    """The least populated city."""
    return await service.min_population()


@router.get("/cities/stats/average-population", response_model=AveragePopulation)
async def get_average_population(service: CitiesService = Depends(get_cities_service)):
    avg = await service.average_population()
    return AveragePopulation(avgPopulation=avg)


@router.get("/cities/sorted-by-population", response_model=List[City], response_model_exclude_none=True)
async def get_cities_sorted_by_population(service: CitiesService = Depends(get_cities_service)):
    """Every city, most populated first."""
    return await service.sorted_by_population()


# ---- single city ------------------------------------------------------------

@router.get("/city/{city_id}", response_model=City, response_model_exclude_none=True)
async def get_city(city_id: int, service: CitiesService = Depends(get_cities_service)):
    return await service.get(city_id)


@router.post(
    "/city",
    response_model=City,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_city(payload: CityCreate, service: CitiesService = Depends(get_cities_service)):
    """Create a city. The id is assigned by the server."""
    return await service.create(payload.model_dump())


@router.put("/city/name/{name}", response_model=City, response_model_exclude_none=True)
async def update_city_by_name(
    name: str,
    payload: CityNameUpdate,
    service: CitiesService = Depends(get_cities_service),
):
    """Update population and area of the city with this exact name."""
    return await service.update_by_name(name, payload.model_dump())


@router.put("/city/{city_id}", response_model=City, response_model_exclude_none=True)
async def update_city(
    city_id: int,
    payload: CityUpdate,
    service: CitiesService = Depends(get_cities_service),
):
    """Replace name, population and area of a city."""
    return await service.update(city_id, payload.model_dump())


@router.delete("/city/{city_id}", response_model=CityDeleteResponse, response_model_exclude_none=True)
async def delete_city(city_id: int, service: CitiesService = Depends(get_cities_service)):
    city = await service.delete(city_id)
    return CityDeleteResponse(message="City deleted successfully", deletedCity=city)
