from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any

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
    WeatherCondition,
    WeatherSnapshot,
    Wind,
)
from app.services.weather.codes import make_condition
from app.services.weather.providers.base import effective_limit, register_provider


logger = logging.getLogger(__name__)

PROVIDER_NAME = "OpenWeather"


def _error_message(body: Any) -> str | None:
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
    return None


def _conditions(raw: list[dict] | None) -> list[WeatherCondition]:
    out = []
    for item in raw or []:
        code = int(item["id"])
        out.append(make_condition(code, item.get("description"), icon=item.get("icon")))
    if not out:
        raise ValueError("payload has no weather conditions")
    return out


def _temperatures(main: dict) -> TemperatureBlock:
    return TemperatureBlock(
        temp=float(main["temp"]),
        feels_like=float(main.get("feels_like", main["temp"])),
        temp_min=float(main.get("temp_min", main["temp"])),
        temp_max=float(main.get("temp_max", main["temp"])),
        pressure=float(main.get("pressure", 0)),
        humidity=float(main.get("humidity", 0)),
    )


def _wind(raw: dict | None) -> Wind:
    raw = raw or {}
    return Wind(speed=float(raw.get("speed", 0.0)), deg=float(raw.get("deg", 0.0)))


def _dt_txt(dt: int) -> str:
    return datetime.fromtimestamp(dt, tz=dt_timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def parse_current(data: dict) -> CurrentConditions:
    coord = data.get("coord") or {}
    sys = data.get("sys") or {}
    return CurrentConditions(
        coord=Coordinates(lat=float(coord["lat"]), lon=float(coord["lon"])),
        weather=_conditions(data.get("weather")),
        main=_temperatures(data["main"]),
        visibility=float(data.get("visibility", 10000)),
        wind=_wind(data.get("wind")),
        clouds=Clouds(all=float((data.get("clouds") or {}).get("all", 0))),
        dt=int(data["dt"]),
        sys=LocationSys(
            country=sys.get("country") or "",
            sunrise=int(sys.get("sunrise", 0)),
            sunset=int(sys.get("sunset", 0)),
        ),
        timezone=int(data.get("timezone", 0)),
        name=data.get("name") or "",
    )


def parse_forecast(data: dict) -> ForecastSeries:
    city = data.get("city") or {}
    coord = city.get("coord") or {}
    points = []
    for item in data.get("list") or []:
        dt = int(item["dt"])
        points.append(
            ForecastPoint(
                dt=dt,
                main=_temperatures(item["main"]),
                weather=_conditions(item.get("weather")),
                clouds=Clouds(all=float((item.get("clouds") or {}).get("all", 0))),
                wind=_wind(item.get("wind")),
                visibility=float(item.get("visibility", 10000)),
                pop=float(item.get("pop", 0.0)),
                dt_txt=item.get("dt_txt") or _dt_txt(dt),
            )
        )
    points.sort(key=lambda p: p.dt)
    return ForecastSeries(
        points=points,
        city=ForecastCity(
            name=city.get("name") or "",
            coord=Coordinates(lat=float(coord.get("lat", 0.0)), lon=float(coord.get("lon", 0.0))),
            country=city.get("country") or "",
            timezone=int(city.get("timezone", 0)),
            sunrise=int(city.get("sunrise", 0)),
            sunset=int(city.get("sunset", 0)),
        ),
    )


class OpenWeatherProvider:
    """OpenWeather current-weather and 5 day / 3 hour forecast endpoints."""

    name = "openweather"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str,
        geo_url: str,
        rate_guard: RollingRateGuard,
    ) -> None:
        if not api_key:
            raise ConfigurationError("OPENWEATHER_API_KEY is not defined in environment variables")
        self._client = client
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.geo_url = geo_url.rstrip("/")
        self.rate_guard = rate_guard

    async def _get(self, url: str, params: dict[str, Any]) -> Any:
        return await fetch_json(
            self._client,
            provider=PROVIDER_NAME,
            url=url,
            params={**params, "appid": self._api_key},
            extract_error=_error_message,
        )

    async def fetch_by_coordinates(self, lat: float, lon: float, unit: UnitSystem) -> WeatherSnapshot:
        self.rate_guard.acquire()
        params = {"lat": lat, "lon": lon, "units": unit.value}
        current_raw, forecast_raw = await asyncio.gather(
            self._get(f"{self.base_url}/weather", params),
            self._get(f"{self.base_url}/forecast", params),
        )
        try:
            return WeatherSnapshot(current=parse_current(current_raw), forecast=parse_forecast(forecast_raw))
        except (KeyError, TypeError, ValueError, PydanticValidationError) as exc:
            logger.warning("Unexpected OpenWeather payload for %s,%s: %s", lat, lon, exc)
            raise UpstreamError(PROVIDER_NAME, f"malformed payload ({type(exc).__name__})") from exc

    async def search_by_name(self, query: str, limit: int = 5) -> list[GeocodingResult]:
        q = (query or "").strip()
        if not q:
            return []
        try:
            self.rate_guard.acquire()
            data = await self._get(f"{self.geo_url}/direct", {"q": q, "limit": effective_limit(limit)})
            results = [
                GeocodingResult(
                    name=item["name"],
                    lat=float(item["lat"]),
                    lon=float(item["lon"]),
                    country=item.get("country") or "",
                    state=item.get("state"),
                )
                for item in data or []
            ]
        except (LocalRateLimitExceeded, UpstreamError, KeyError, TypeError, ValueError, PydanticValidationError) as exc:
            logger.warning("OpenWeather geocoding failed for %r: %s", q, exc)
            return []
        return results[: effective_limit(limit)]


@register_provider("openweather")
def build_openweather(settings: Settings, client: httpx.AsyncClient) -> OpenWeatherProvider:
    return OpenWeatherProvider(
        client,
        api_key=settings.openweather_api_key or "",
        base_url=settings.openweather_base_url,
        geo_url=settings.openweather_geo_url,
        rate_guard=RollingRateGuard(settings.max_requests_per_minute),
    )
