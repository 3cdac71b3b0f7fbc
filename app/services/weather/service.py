from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from app.core.errors import ValidationError
from app.schemas.weather import GeocodingResult, UnitSystem, WeatherSnapshot
from app.services.weather.cache import WeatherCache
from app.services.weather.providers.base import SEARCH_RESULT_CAP, WeatherProvider


logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 100


@dataclass(frozen=True)
class WeatherResult:
    snapshot: WeatherSnapshot
    served_from_cache: bool


def parse_unit(value: UnitSystem | str | None) -> UnitSystem:
    if value is None or value == "":
        return UnitSystem.METRIC
    if isinstance(value, UnitSystem):
        return value
    try:
        return UnitSystem(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Units must be metric, imperial, or standard") from None


def validate_coordinates(lat: float | None, lon: float | None) -> tuple[float, float]:
    if lat is None:
        raise ValidationError("Latitude is required")
    if lon is None:
        raise ValidationError("Longitude is required")
    lat, lon = float(lat), float(lon)
    if math.isnan(lat) or not -90.0 <= lat <= 90.0:
        raise ValidationError("Latitude must be between -90 and 90")
    if math.isnan(lon) or not -180.0 <= lon <= 180.0:
        raise ValidationError("Longitude must be between -180 and 180")
    return lat, lon


def validate_query(query: str | None) -> str:
    q = (query or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    if len(q) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Search query must be between 1 and {MAX_QUERY_LENGTH} characters")
    return q


class WeatherService:
    """Serves snapshots from the cache when fresh, otherwise from the provider.

    Concurrent misses for the same fingerprint each go upstream and each
    write the cache; the last write wins.
    """

    def __init__(self, provider: WeatherProvider, cache: WeatherCache) -> None:
        self.provider = provider
        self.cache = cache

    async def get_weather(
        self,
        lat: float,
        lon: float,
        unit: UnitSystem | str = UnitSystem.METRIC,
    ) -> WeatherResult:
        lat, lon = validate_coordinates(lat, lon)
        units = parse_unit(unit)

        lookup = await self.cache.lookup(lat, lon, units)
        if lookup.hit:
            return WeatherResult(snapshot=lookup.snapshot, served_from_cache=True)

        # Provider errors propagate unchanged; nothing is retried here.
        snapshot = await self.provider.fetch_by_coordinates(lat, lon, units)
        await self.cache.set(lat, lon, units, snapshot)
        return WeatherResult(snapshot=snapshot, served_from_cache=False)

    async def search(self, query: str, limit: int = SEARCH_RESULT_CAP) -> list[GeocodingResult]:
        if not (query or "").strip():
            return []
        q = validate_query(query)
        if limit < 1 or limit > SEARCH_RESULT_CAP:
            raise ValidationError(f"Limit must be between 1 and {SEARCH_RESULT_CAP}")
        results = await self.provider.search_by_name(q, limit)
        return results[:limit]
