from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.deps import get_weather_service
from app.core.config import get_settings
from app.core.rate_limit import limiter
from app.schemas.weather import CitySearchResponse, ErrorResponse, WeatherCurrentResponse
from app.services.weather.service import WeatherService, validate_query


router = APIRouter()


def _weather_limit() -> str:
    return get_settings().weather_rate_limit


@router.get(
    "/current",
    response_model=WeatherCurrentResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
@limiter.limit(_weather_limit)
async def current_weather(
    request: Request,
    # Presence and range checks happen in the service so callers get its messages.
    lat: float | None = Query(None, description="Latitude, -90..90."),
    lon: float | None = Query(None, description="Longitude, -180..180."),
    units: str | None = Query(None, description="metric (default), imperial or standard."),
    service: WeatherService = Depends(get_weather_service),
):
    result = await service.get_weather(lat, lon, units)
    return WeatherCurrentResponse(data=result.snapshot, cached=result.served_from_cache)


@router.get("/search", response_model=CitySearchResponse)
@limiter.limit(_weather_limit)
async def search_cities(
    request: Request,
    q: str = Query("", max_length=300),
    service: WeatherService = Depends(get_weather_service),
):
    cities = await service.search(validate_query(q))
    return CitySearchResponse(data=cities, count=len(cities))
