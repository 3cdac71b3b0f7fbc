from fastapi import APIRouter, Depends, Request

from app.api.v1.deps import get_weather_cache
from app.core.config import get_settings
from app.core.rate_limit import limiter
from app.schemas.weather import CacheDeleteResponse, CacheDeleteResult, CacheStatsResponse
from app.services.weather.cache import WeatherCache


router = APIRouter()


def _api_limit() -> str:
    return get_settings().api_rate_limit


@router.get("/stats", response_model=CacheStatsResponse)
@limiter.limit(_api_limit)
async def cache_stats(request: Request, cache: WeatherCache = Depends(get_weather_cache)):
    return CacheStatsResponse(data=await cache.stats())


@router.post("/sweep", response_model=CacheDeleteResponse)
@limiter.limit(_api_limit)
async def sweep_expired(request: Request, cache: WeatherCache = Depends(get_weather_cache)):
    return CacheDeleteResponse(data=CacheDeleteResult(deleted=await cache.sweep()))


@router.delete("", response_model=CacheDeleteResponse)
@limiter.limit(_api_limit)
async def clear_cache(request: Request, cache: WeatherCache = Depends(get_weather_cache)):
    return CacheDeleteResponse(data=CacheDeleteResult(deleted=await cache.clear()))
