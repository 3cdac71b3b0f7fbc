from __future__ import annotations

from app.schemas.weather import GeocodingResult, UnitSystem, WeatherSnapshot

__all__ = ["GeocodingResult", "UnitSystem", "WeatherSnapshot"]
