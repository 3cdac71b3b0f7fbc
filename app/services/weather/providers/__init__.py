from __future__ import annotations

import httpx

from app.core.config import Settings
from app.core.errors import ConfigurationError
from app.services.weather.providers import openweather, weatherstack  # noqa: F401  (registers factories)
from app.services.weather.providers.base import (
    WeatherProvider,
    get_provider_factory,
    list_available_providers,
)


def build_provider(settings: Settings, client: httpx.AsyncClient) -> WeatherProvider:
    """Instantiate the adapter named by ``WEATHER_PROVIDER``."""
    factory = get_provider_factory(settings.weather_provider)
    if factory is None:
        raise ConfigurationError(
            f"Unknown weather provider {settings.weather_provider!r}; "
            f"expected one of {', '.join(list_available_providers())}"
        )
    return factory(settings, client)


__all__ = ["WeatherProvider", "build_provider", "list_available_providers"]
