from __future__ import annotations

import logging
import math
import random
import time
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.core.errors import ConfigurationError, LocalRateLimitExceeded, UpstreamError
from app.core.http import fetch_json
from app.core.rate_limit import RollingRateGuard
from app.schemas.weather import (
    Clouds,
    Coordinates,
    CurrentConditions,
    ForecastCity,
    ForecastPoint,
    ForecastSeries,
    GeocodingResult,
    LocationSys,
    TemperatureBlock,
    UnitSystem,
    WeatherSnapshot,
    Wind,
)
from app.services.weather.codes import from_weatherstack, make_condition
from app.services.weather.providers.base import effective_limit, register_provider


logger = logging.getLogger(__name__)

PROVIDER_NAME = "Weatherstack"

KMH_PER_MS = 3.6
METERS_PER_KM = 1000.0
METERS_PER_MILE = 1609.344

# The free tier has no forecast endpoint; these shape the locally generated series.
FORECAST_POINTS = 40
FORECAST_STRIDE_SECONDS = 3 * 3600
FORECAST_TEMP_AMPLITUDE = 5.0
FORECAST_PHASE = 0.5
FORECAST_MAX_POP = 0.3

# No sun times on the free tier either.
APPROX_HALF_DAY_SECONDS = 6 * 3600


def _error_message(body: Any) -> str | None:
    if isinstance(body, dict):
        error = body.get("error") or {}
        if isinstance(error, dict) and error.get("info"):
            return str(error["info"])
    return None


def upstream_units(unit: UnitSystem) -> str:
    # Weatherstack knows metric ("m") and Fahrenheit ("f"); standard falls back to metric.
    return "f" if unit is UnitSystem.IMPERIAL else "m"


def wind_speed(raw: float, unit: UnitSystem) -> float:
    if unit is UnitSystem.IMPERIAL:
        return float(raw)
    return float(raw) / KMH_PER_MS


def visibility_meters(raw: float, unit: UnitSystem) -> float:
    if unit is UnitSystem.IMPERIAL:
        return float(raw) * METERS_PER_MILE
    return float(raw) * METERS_PER_KM


def _utc_offset_seconds(raw: Any) -> int:
    try:
        return int(round(float(raw) * 3600))
    except (TypeError, ValueError):
        return 0


def normalize_current(data: dict, unit: UnitSystem) -> CurrentConditions:
    location = data["location"]
    current = data["current"]
    code = from_weatherstack(int(current.get("weather_code", 0)))
    descriptions = current.get("weather_descriptions") or []
    is_day = str(current.get("is_day", "yes")).lower() == "yes"
    observed = int(location.get("localtime_epoch") or 0)
    temp = float(current["temperature"])

    return CurrentConditions(
        coord=Coordinates(lat=float(location["lat"]), lon=float(location["lon"])),
        weather=[make_condition(code, descriptions[0] if descriptions else None, is_day=is_day)],
        main=TemperatureBlock(
            temp=temp,
            feels_like=float(current.get("feelslike", temp)),
            temp_min=temp,
            temp_max=temp,
            pressure=float(current.get("pressure", 0)),
            humidity=float(current.get("humidity", 0)),
        ),
        visibility=visibility_meters(current.get("visibility", 0), unit),
        wind=Wind(
            speed=wind_speed(current.get("wind_speed", 0), unit),
            deg=float(current.get("wind_degree", 0)) % 360,
        ),
        clouds=Clouds(all=float(current.get("cloudcover", 0))),
        dt=observed,
        sys=LocationSys(
            country=location.get("country") or "",
            sunrise=observed - APPROX_HALF_DAY_SECONDS,
            sunset=observed + APPROX_HALF_DAY_SECONDS,
        ),
        timezone=_utc_offset_seconds(location.get("utc_offset")),
        name=location.get("name") or "",
    )


def synthesize_forecast(
    current: CurrentConditions,
    *,
    now: int,
    rng: random.Random,
) -> ForecastSeries:
    """Build a placeholder 5 day / 3 hour series from current conditions.

    The points are not a forecast: temperatures oscillate around the current
    reading and precipitation chances are random. The returned series is
    flagged ``synthesized=True`` so callers can tell.
    """
    points = []
    for i in range(FORECAST_POINTS):
        dt = now + i * FORECAST_STRIDE_SECONDS
        variation = FORECAST_TEMP_AMPLITUDE * math.sin(i * FORECAST_PHASE)
        points.append(
            ForecastPoint(
                dt=dt,
                main=TemperatureBlock(
                    temp=current.main.temp + variation,
                    feels_like=current.main.feels_like + variation,
                    temp_min=current.main.temp_min + variation - 2,
                    temp_max=current.main.temp_max + variation + 2,
                    pressure=current.main.pressure,
                    humidity=current.main.humidity,
                ),
                weather=[c.model_copy() for c in current.weather],
                clouds=current.clouds.model_copy(),
                wind=current.wind.model_copy(),
                visibility=current.visibility,
                pop=rng.random() * FORECAST_MAX_POP,
                dt_txt=datetime.fromtimestamp(dt, tz=dt_timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            )
        )
    return ForecastSeries(
        points=points,
        city=ForecastCity(
            name=current.name,
            coord=current.coord.model_copy(),
            country=current.sys.country,
            timezone=current.timezone,
            sunrise=current.sys.sunrise,
            sunset=current.sys.sunset,
        ),
        synthesized=True,
    )


class WeatherstackProvider:
    """Weatherstack current conditions with a synthesized forecast."""

    name = "weatherstack"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str,
        rate_guard: RollingRateGuard,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("WEATHERSTACK_API_KEY is not defined in environment variables")
        self._client = client
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.rate_guard = rate_guard
        self._clock = clock
        self._rng = rng or random.Random()

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        data = await fetch_json(
            self._client,
            provider=PROVIDER_NAME,
            url=f"{self.base_url}{path}",
            params={**params, "access_key": self._api_key},
            extract_error=_error_message,
        )
        # Weatherstack reports most failures with HTTP 200 and an error object.
        message = _error_message(data)
        if message or (isinstance(data, dict) and data.get("success") is False):
            raise UpstreamError(PROVIDER_NAME, message or "request was not successful")
        return data

    async def fetch_by_coordinates(self, lat: float, lon: float, unit: UnitSystem) -> WeatherSnapshot:
        self.rate_guard.acquire()
        data = await self._get(
            "/current",
            {"query": f"{lat},{lon}", "units": upstream_units(unit)},
        )
        try:
            current = normalize_current(data, unit)
        except (KeyError, TypeError, ValueError, PydanticValidationError) as exc:
            logger.warning("Unexpected Weatherstack payload for %s,%s: %s", lat, lon, exc)
            raise UpstreamError(PROVIDER_NAME, f"malformed payload ({type(exc).__name__})") from exc
        forecast = synthesize_forecast(current, now=int(self._clock()), rng=self._rng)
        return WeatherSnapshot(current=current, forecast=forecast)

    async def search_by_name(self, query: str, limit: int = 5) -> list[GeocodingResult]:
        q = (query or "").strip()
        if not q:
            return []
        try:
            self.rate_guard.acquire()
            data = await self._get("/autocomplete", {"query": q})
            results = [
                GeocodingResult(
                    name=item["name"],
                    lat=float(item["lat"]),
                    lon=float(item["lon"]),
                    country=item.get("country") or "",
                    state=item.get("region") or None,
                )
                for item in (data.get("results") or [])
            ]
        except (
            LocalRateLimitExceeded,
            UpstreamError,
            AttributeError,
            KeyError,
            TypeError,
            ValueError,
            PydanticValidationError,
        ) as exc:
            # Autocomplete is not part of the free tier.
            logger.warning("Weatherstack city search failed for %r: %s", q, exc)
            return []
        return results[: effective_limit(limit)]


@register_provider("weatherstack")
def build_weatherstack(settings: Settings, client: httpx.AsyncClient) -> WeatherstackProvider:
    return WeatherstackProvider(
        client,
        api_key=settings.weatherstack_api_key or "",
        base_url=settings.weatherstack_base_url,
        rate_guard=RollingRateGuard(settings.max_requests_per_minute),
    )
