from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

import httpx

from app.core.config import Settings
from app.schemas.weather import GeocodingResult, UnitSystem, WeatherSnapshot


# Upstream geocoders never return more than this many matches.
SEARCH_RESULT_CAP = 5


@runtime_checkable
class WeatherProvider(Protocol):
    """Capability shared by every upstream weather integration."""

    name: str

    async def fetch_by_coordinates(
        self, lat: float, lon: float, unit: UnitSystem
    ) -> WeatherSnapshot:
        """Fetch current conditions and forecast; raises UpstreamError."""
        ...

    async def search_by_name(self, query: str, limit: int = SEARCH_RESULT_CAP) -> list[GeocodingResult]:
        """Resolve a place name; returns [] on blank input or upstream failure."""
        ...


ProviderFactory = Callable[[Settings, httpx.AsyncClient], WeatherProvider]

# Registry mapping WEATHER_PROVIDER values to factories
_provider_registry: dict[str, ProviderFactory] = {}


def register_provider(name: str):
    """Decorator to register a provider factory under a config name."""

    def decorator(factory: ProviderFactory) -> ProviderFactory:
        _provider_registry[name] = factory
        return factory

    return decorator


def get_provider_factory(name: str) -> ProviderFactory | None:
    return _provider_registry.get(name)


def list_available_providers() -> list[str]:
    return sorted(_provider_registry)


def effective_limit(limit: int) -> int:
    return max(0, min(limit, SEARCH_RESULT_CAP))
