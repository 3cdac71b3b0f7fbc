from __future__ import annotations

from fastapi import Request

from app.services.weather.cache import WeatherCache
from app.services.weather.service import WeatherService


def get_weather_service(request: Request) -> WeatherService:
    """Service built by create_app(); override in tests to inject fakes."""
    return request.app.state.weather_service


def get_weather_cache(request: Request) -> WeatherCache:
    return request.app.state.weather_service.cache
