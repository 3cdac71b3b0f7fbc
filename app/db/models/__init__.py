from __future__ import annotations

from app.db.models.weather_cache import WeatherCacheEntry

__all__ = ["WeatherCacheEntry"]
