from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Callable, Protocol

from cachetools import LRUCache
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.errors import CacheUnavailable
from app.db.models.weather_cache import WeatherCacheEntry
from app.db.session import create_session_maker
from app.schemas.weather import CacheStats, UnitSystem, WeatherSnapshot


logger = logging.getLogger(__name__)

FINGERPRINT_DECIMALS = 4


def _unit_value(unit: UnitSystem | str) -> str:
    return unit.value if isinstance(unit, UnitSystem) else str(unit)


def fingerprint(lat: float, lon: float, unit: UnitSystem | str) -> str:
    """Cache key for a coordinate pair and unit system.

    Coordinates are rounded to 4 decimals (about 11 m at the equator), so
    requests for nearly the same spot share an entry.
    """
    # + 0.0 folds -0.0 into 0.0 so both hemispheres of the origin share a key.
    lat_r = round(lat, FINGERPRINT_DECIMALS) + 0.0
    lon_r = round(lon, FINGERPRINT_DECIMALS) + 0.0
    return f"{lat_r:.{FINGERPRINT_DECIMALS}f}_{lon_r:.{FINGERPRINT_DECIMALS}f}_{_unit_value(unit)}"


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    return value if value.tzinfo else value.replace(tzinfo=dt_timezone.utc)


@dataclass
class CacheEntry:
    fingerprint: str
    lat: float
    lon: float
    units: str
    snapshot: WeatherSnapshot
    created_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now <= self.expires_at


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of a cache read. Failures are folded into a miss."""

    snapshot: WeatherSnapshot | None = None
    error: str | None = None

    @property
    def hit(self) -> bool:
        return self.snapshot is not None


class CacheStore(Protocol):
    async def get(self, key: str) -> CacheEntry | None: ...

    async def upsert(self, entry: CacheEntry) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...

    async def delete_all(self) -> int: ...

    async def count(self, now: datetime) -> tuple[int, int]:
        """Return ``(total, expired)``."""
        ...


class MemoryCacheStore:
    """Process-local store; bounded LRU so stale coordinates fall out eventually."""

    def __init__(self, *, maxsize: int = 1024) -> None:
        self._entries: LRUCache = LRUCache(maxsize=maxsize)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return replace(entry, snapshot=entry.snapshot.model_copy(deep=True))

    async def upsert(self, entry: CacheEntry) -> None:
        stored = replace(entry, snapshot=entry.snapshot.model_copy(deep=True))
        async with self._lock:
            self._entries[entry.fingerprint] = stored

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in stale:
                del self._entries[key]
        return len(stale)

    async def delete_all(self) -> int:
        async with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        return removed

    async def count(self, now: datetime) -> tuple[int, int]:
        async with self._lock:
            total = len(self._entries)
            expired = sum(1 for entry in self._entries.values() if entry.expires_at < now)
        return total, expired


def _dialect_insert(dialect: str):
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise CacheUnavailable(f"No upsert support for database dialect {dialect!r}")
    return insert


class SqlCacheStore:
    """``weather_cache`` table accessed through SQLAlchemy's async engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_maker = create_session_maker(engine)

    async def get(self, key: str) -> CacheEntry | None:
        try:
            async with self._session_maker() as session:
                row = await session.get(WeatherCacheEntry, key)
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache read failed: {type(exc).__name__}") from exc
        if row is None:
            return None
        return CacheEntry(
            fingerprint=row.fingerprint,
            lat=row.lat,
            lon=row.lon,
            units=row.units,
            snapshot=WeatherSnapshot.model_validate(row.response),
            created_at=_aware(row.created_at),
            expires_at=_aware(row.expires_at),
        )

    async def upsert(self, entry: CacheEntry) -> None:
        insert = _dialect_insert(self._engine.dialect.name)
        values = {
            "fingerprint": entry.fingerprint,
            "lat": entry.lat,
            "lon": entry.lon,
            "units": entry.units,
            "response": entry.snapshot.model_dump(mode="json", by_alias=True),
            "created_at": entry.created_at,
            "expires_at": entry.expires_at,
        }
        stmt = insert(WeatherCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[WeatherCacheEntry.fingerprint],
            set_={name: stmt.excluded[name] for name in values if name != "fingerprint"},
        )
        try:
            async with self._session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache write failed: {type(exc).__name__}") from exc

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete(WeatherCacheEntry.expires_at < now)

    async def delete_all(self) -> int:
        return await self._delete()

    async def _delete(self, *criteria) -> int:
        stmt = delete(WeatherCacheEntry)
        if criteria:
            stmt = stmt.where(*criteria)
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache delete failed: {type(exc).__name__}") from exc
        return result.rowcount or 0

    async def count(self, now: datetime) -> tuple[int, int]:
        try:
            async with self._session_maker() as session:
                total = await session.scalar(select(func.count()).select_from(WeatherCacheEntry))
                expired = await session.scalar(
                    select(func.count())
                    .select_from(WeatherCacheEntry)
                    .where(WeatherCacheEntry.expires_at < now)
                )
        except SQLAlchemyError as exc:
            raise CacheUnavailable(f"cache count failed: {type(exc).__name__}") from exc
        return int(total or 0), int(expired or 0)


class WeatherCache:
    """Best-effort TTL cache of weather snapshots keyed by fingerprint.

    No method raises: a broken backing store reads as an empty cache and
    writes are dropped after logging.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=dt_timezone.utc)

    async def lookup(self, lat: float, lon: float, unit: UnitSystem | str) -> CacheLookup:
        key = fingerprint(lat, lon, unit)
        try:
            entry = await self.store.get(key)
        except Exception as exc:
            logger.warning("Cache retrieval error for %s: %s", key, exc)
            return CacheLookup(error=str(exc) or type(exc).__name__)
        if entry is None or not entry.is_fresh(self._now()):
            return CacheLookup()
        return CacheLookup(snapshot=entry.snapshot)

    async def get(self, lat: float, lon: float, unit: UnitSystem | str) -> WeatherSnapshot | None:
        return (await self.lookup(lat, lon, unit)).snapshot

    async def set(self, lat: float, lon: float, unit: UnitSystem | str, snapshot: WeatherSnapshot) -> None:
        now = self._now()
        entry = CacheEntry(
            fingerprint=fingerprint(lat, lon, unit),
            lat=lat,
            lon=lon,
            units=_unit_value(unit),
            snapshot=snapshot,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        try:
            await self.store.upsert(entry)
        except Exception as exc:
            logger.warning("Cache storage error for %s: %s", entry.fingerprint, exc)

    async def sweep(self) -> int:
        try:
            removed = await self.store.delete_expired(self._now())
        except Exception as exc:
            logger.warning("Cache cleanup error: %s", exc)
            return 0
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        return removed

    async def clear(self) -> int:
        try:
            return await self.store.delete_all()
        except Exception as exc:
            logger.warning("Cache clear error: %s", exc)
            return 0

    async def stats(self) -> CacheStats:
        try:
            total, expired = await self.store.count(self._now())
        except Exception as exc:
            logger.warning("Cache stats error: %s", exc)
            return CacheStats()
        return CacheStats(total_entries=total, expired_entries=expired, active_entries=total - expired)
