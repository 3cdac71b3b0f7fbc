import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.errors import CacheUnavailable
from app.db.models.weather_cache import WeatherCacheEntry
from app.db.session import create_session_maker, create_tables
from app.schemas.weather import UnitSystem
from app.services.weather.cache import MemoryCacheStore, SqlCacheStore, WeatherCache, fingerprint
from payloads import make_snapshot


class BrokenStore:
    async def get(self, key):
        raise CacheUnavailable("connection refused")

    async def upsert(self, entry):
        raise CacheUnavailable("connection refused")

    async def delete_expired(self, now):
        raise CacheUnavailable("connection refused")

    async def delete_all(self):
        raise RuntimeError("boom")

    async def count(self, now):
        raise CacheUnavailable("connection refused")


@pytest_asyncio.fixture
async def sql_store():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield SqlCacheStore(engine)
    await engine.dispose()


def test_fingerprint_format():
    assert fingerprint(40.7128, -74.0060, "metric") == "40.7128_-74.0060_metric"
    assert fingerprint(40.7128, -74.006, UnitSystem.IMPERIAL) == "40.7128_-74.0060_imperial"


def test_fingerprint_merges_nearby_coordinates():
    base = fingerprint(51.50741, -0.12781, "metric")
    assert fingerprint(51.507449, -0.127849, "metric") == base
    assert fingerprint(51.50736, -0.12776, "metric") == base
    assert fingerprint(51.5075, -0.1278, "metric") != base


def test_fingerprint_separates_units_and_normalizes_negative_zero():
    assert fingerprint(10.0, 20.0, "metric") != fingerprint(10.0, 20.0, "imperial")
    assert fingerprint(-0.00001, 0.00001, "metric") == "0.0000_0.0000_metric"


@pytest.mark.asyncio
async def test_round_trip_returns_equal_snapshot(clock, snapshot):
    cache = WeatherCache(MemoryCacheStore(), ttl_seconds=300, clock=clock)

    await cache.set(40.7128, -74.0060, "metric", snapshot)
    cached = await cache.get(40.7128, -74.0060, "metric")

    assert cached == snapshot
    assert await cache.get(40.7128, -74.0060, "imperial") is None


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(clock, snapshot):
    cache = WeatherCache(MemoryCacheStore(), ttl_seconds=1, clock=clock)
    await cache.set(40.7128, -74.0060, "metric", snapshot)

    clock.advance(1.0)
    assert await cache.get(40.7128, -74.0060, "metric") is not None

    clock.advance(0.1)
    assert await cache.get(40.7128, -74.0060, "metric") is None


@pytest.mark.asyncio
async def test_set_twice_keeps_one_entry(clock):
    store = MemoryCacheStore()
    cache = WeatherCache(store, ttl_seconds=300, clock=clock)

    await cache.set(40.7128, -74.0060, "metric", make_snapshot(temp=10.0))
    await cache.set(40.71281, -74.00601, "metric", make_snapshot(temp=20.0))

    stats = await cache.stats()
    assert stats.total_entries == 1
    cached = await cache.get(40.7128, -74.0060, "metric")
    assert cached.current.main.temp == 20.0


@pytest.mark.asyncio
async def test_cached_snapshot_is_not_aliased(clock, snapshot):
    cache = WeatherCache(MemoryCacheStore(), ttl_seconds=300, clock=clock)
    await cache.set(1.0, 2.0, "metric", snapshot)

    snapshot.current.main.temp = -99.0
    cached = await cache.get(1.0, 2.0, "metric")
    assert cached.current.main.temp == 14.2


@pytest.mark.asyncio
async def test_sweep_and_stats(clock):
    cache = WeatherCache(MemoryCacheStore(), ttl_seconds=60, clock=clock)
    await cache.set(1.0, 1.0, "metric", make_snapshot())
    clock.advance(30)
    await cache.set(2.0, 2.0, "metric", make_snapshot())
    clock.advance(45)

    stats = await cache.stats()
    assert (stats.total_entries, stats.expired_entries, stats.active_entries) == (2, 1, 1)

    assert await cache.sweep() == 1
    stats = await cache.stats()
    assert stats.total_entries == 1
    assert await cache.clear() == 1


@pytest.mark.asyncio
async def test_broken_store_degrades_to_miss(snapshot):
    cache = WeatherCache(BrokenStore(), ttl_seconds=300)

    lookup = await cache.lookup(1.0, 2.0, "metric")
    assert not lookup.hit
    assert "connection refused" in lookup.error

    assert await cache.get(1.0, 2.0, "metric") is None
    await cache.set(1.0, 2.0, "metric", snapshot)
    assert await cache.sweep() == 0
    assert await cache.clear() == 0
    assert (await cache.stats()).total_entries == 0


@pytest.mark.asyncio
async def test_sql_store_round_trip_and_upsert(sql_store, clock):
    cache = WeatherCache(sql_store, ttl_seconds=300, clock=clock)

    first = make_snapshot(temp=10.0)
    await cache.set(51.5074, -0.1278, "metric", first)
    assert await cache.get(51.5074, -0.1278, "metric") == first

    second = make_snapshot(temp=11.5)
    await cache.set(51.5074, -0.1278, "metric", second)
    assert await cache.get(51.5074, -0.1278, "metric") == second
    assert (await cache.stats()).total_entries == 1


@pytest.mark.asyncio
async def test_sql_store_expiry_and_sweep(sql_store, clock):
    cache = WeatherCache(sql_store, ttl_seconds=10, clock=clock)
    await cache.set(1.0, 1.0, "metric", make_snapshot())
    await cache.set(2.0, 2.0, "imperial", make_snapshot())

    clock.advance(11)
    assert await cache.get(1.0, 1.0, "metric") is None
    await cache.set(3.0, 3.0, "metric", make_snapshot())

    stats = await cache.stats()
    assert (stats.total_entries, stats.expired_entries) == (3, 2)
    assert await cache.sweep() == 2
    assert await cache.get(3.0, 3.0, "metric") is not None


@pytest.mark.asyncio
async def test_sql_store_persists_forecast_under_list_key(sql_store, clock):
    cache = WeatherCache(sql_store, ttl_seconds=300, clock=clock)
    await cache.set(1.0, 2.0, "metric", make_snapshot())

    async with create_session_maker(sql_store._engine)() as session:
        row = await session.get(WeatherCacheEntry, fingerprint(1.0, 2.0, "metric"))

    assert "list" in row.response["forecast"]
    assert "points" not in row.response["forecast"]
    assert (await cache.get(1.0, 2.0, "metric")).forecast.points == make_snapshot().forecast.points
