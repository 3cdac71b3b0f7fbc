from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class WeatherCacheEntry(Base):
    __tablename__ = "weather_cache"
    __table_args__ = (
        Index("ix_weather_cache_coords_units", "lat", "lon", "units"),
        Index("ix_weather_cache_expires_at", "expires_at"),
    )

    # One row per fingerprint; writes go through INSERT .. ON CONFLICT.
    fingerprint: Mapped[str] = mapped_column(String(64), primary_key=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    units: Mapped[str] = mapped_column(String(16), nullable=False, default="metric")
    response: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
