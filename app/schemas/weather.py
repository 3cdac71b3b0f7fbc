from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UnitSystem(str, Enum):
    METRIC = "metric"
    IMPERIAL = "imperial"
    STANDARD = "standard"


class Coordinates(BaseModel):
    lat: float
    lon: float


class WeatherCondition(BaseModel):
    id: int = Field(..., description="Canonical condition code (2xx thunderstorm .. 80x clouds).")
    main: str = Field(..., description="Condition category, e.g. Rain.")
    description: str
    icon: str = Field(..., description="Icon id such as 10d.")


class TemperatureBlock(BaseModel):
    temp: float
    feels_like: float
    temp_min: float
    temp_max: float
    pressure: float
    humidity: float


class Wind(BaseModel):
    speed: float = Field(..., description="m/s for metric and standard, mph for imperial.")
    deg: float = Field(0.0, ge=0, le=360)


class Clouds(BaseModel):
    all: float = Field(0.0, description="Cloud cover (%).")


class LocationSys(BaseModel):
    country: str = ""
    sunrise: int = Field(0, description="Unix seconds, UTC.")
    sunset: int = Field(0, description="Unix seconds, UTC.")


class CurrentConditions(BaseModel):
    coord: Coordinates
    weather: list[WeatherCondition] = Field(..., min_length=1)
    main: TemperatureBlock
    visibility: float = Field(..., description="Visibility (m).")
    wind: Wind
    clouds: Clouds
    dt: int = Field(..., description="Observation instant, Unix seconds UTC.")
    sys: LocationSys
    timezone: int = Field(0, description="Offset from UTC in seconds.")
    name: str = ""


class ForecastPoint(BaseModel):
    dt: int
    main: TemperatureBlock
    weather: list[WeatherCondition] = Field(..., min_length=1)
    clouds: Clouds
    wind: Wind
    visibility: float
    pop: float = Field(..., ge=0.0, le=1.0, description="Probability of precipitation.")
    dt_txt: str


class ForecastCity(BaseModel):
    name: str = ""
    coord: Coordinates
    country: str = ""
    timezone: int = 0
    sunrise: int = 0
    sunset: int = 0


class ForecastSeries(BaseModel):
    # Serialized as "list", matching the OpenWeather forecast payload.
    model_config = ConfigDict(populate_by_name=True)

    points: list[ForecastPoint] = Field(default_factory=list, alias="list")
    city: ForecastCity
    synthesized: bool = Field(
        False,
        description="True when the points were generated locally instead of returned by the provider.",
    )

    @field_validator("points")
    @classmethod
    def _ascending_dt(cls, points: list[ForecastPoint]) -> list[ForecastPoint]:
        for prev, nxt in zip(points, points[1:]):
            if nxt.dt < prev.dt:
                raise ValueError("forecast points must be ordered ascending by dt")
        return points


class WeatherSnapshot(BaseModel):
    current: CurrentConditions
    forecast: ForecastSeries


class GeocodingResult(BaseModel):
    name: str
    lat: float
    lon: float
    country: str = ""
    state: str | None = None


class CacheStats(BaseModel):
    total_entries: int = 0
    expired_entries: int = 0
    active_entries: int = 0


class WeatherCurrentResponse(BaseModel):
    success: bool = True
    data: WeatherSnapshot
    cached: bool


class CitySearchResponse(BaseModel):
    success: bool = True
    data: list[GeocodingResult]
    count: int


class CacheStatsResponse(BaseModel):
    success: bool = True
    data: CacheStats


class CacheDeleteResult(BaseModel):
    deleted: int


class CacheDeleteResponse(BaseModel):
    success: bool = True
    data: CacheDeleteResult


class HealthResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: datetime


class ErrorDetail(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
