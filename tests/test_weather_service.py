import pytest

from app.core.errors import UpstreamError, ValidationError
from app.schemas.weather import GeocodingResult, UnitSystem
from app.services.weather.cache import MemoryCacheStore, WeatherCache
from app.services.weather.service import WeatherService, parse_unit
from payloads import make_snapshot


class FakeProvider:
    name = "fake"

    def __init__(self, *, fail=False):
        self.fail = fail
        self.fetch_calls = []
        self.search_calls = []

    async def fetch_by_coordinates(self, lat, lon, unit):
        self.fetch_calls.append((lat, lon, unit))
        if self.fail:
            raise UpstreamError("Fake", "service unavailable", upstream_status=503)
        return make_snapshot()

    async def search_by_name(self, query, limit=5):
        self.search_calls.append((query, limit))
        return [GeocodingResult(name=f"{query} {i}", lat=1.0, lon=2.0, country="XX") for i in range(limit + 2)]


class ExplodingCache(WeatherCache):
    def __init__(self):
        super().__init__(MemoryCacheStore(), ttl_seconds=300)

    async def lookup(self, lat, lon, unit):
        raise AssertionError("cache must not be consulted")


def _service(provider, clock=None):
    cache = WeatherCache(MemoryCacheStore(), ttl_seconds=300, **({"clock": clock} if clock else {}))
    return WeatherService(provider, cache)


@pytest.mark.asyncio
async def test_miss_then_hit(clock):
    provider = FakeProvider()
    service = _service(provider, clock)

    first = await service.get_weather(51.5074, -0.1278, "metric")
    assert first.served_from_cache is False
    assert provider.fetch_calls == [(51.5074, -0.1278, UnitSystem.METRIC)]

    second = await service.get_weather(51.5074, -0.1278, "metric")
    assert second.served_from_cache is True
    assert second.snapshot == first.snapshot
    assert len(provider.fetch_calls) == 1


@pytest.mark.asyncio
async def test_expired_entry_refetches(clock):
    provider = FakeProvider()
    service = _service(provider, clock)

    await service.get_weather(10.0, 10.0, UnitSystem.IMPERIAL)
    clock.advance(301)
    result = await service.get_weather(10.0, 10.0, UnitSystem.IMPERIAL)

    assert result.served_from_cache is False
    assert len(provider.fetch_calls) == 2


@pytest.mark.asyncio
async def test_provider_failure_propagates_and_is_not_cached(clock):
    provider = FakeProvider(fail=True)
    service = _service(provider, clock)

    with pytest.raises(UpstreamError):
        await service.get_weather(1.0, 2.0)

    provider.fail = False
    result = await service.get_weather(1.0, 2.0)
    assert result.served_from_cache is False
    assert len(provider.fetch_calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "lat, lon, unit, message",
    [
        (91.0, 0.0, "metric", "Latitude must be between -90 and 90"),
        (0.0, -180.5, "metric", "Longitude must be between -180 and 180"),
        (float("nan"), 0.0, "metric", "Latitude must be between -90 and 90"),
        (None, 0.0, "metric", "Latitude is required"),
        (0.0, 0.0, "kelvin", "Units must be metric, imperial, or standard"),
    ],
)
async def test_validation_happens_before_cache_and_network(lat, lon, unit, message):
    provider = FakeProvider()
    service = WeatherService(provider, ExplodingCache())

    with pytest.raises(ValidationError) as excinfo:
        await service.get_weather(lat, lon, unit)

    assert excinfo.value.message == message
    assert provider.fetch_calls == []


def test_parse_unit_defaults_to_metric():
    assert parse_unit(None) is UnitSystem.METRIC
    assert parse_unit(" Imperial ") is UnitSystem.IMPERIAL
    assert parse_unit(UnitSystem.STANDARD) is UnitSystem.STANDARD


@pytest.mark.asyncio
async def test_search_bounds_results_and_skips_blank():
    provider = FakeProvider()
    service = _service(provider)

    assert await service.search("   ") == []
    assert provider.search_calls == []

    results = await service.search("  Oslo ", 2)
    assert provider.search_calls == [("Oslo", 2)]
    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_rejects_overlong_query():
    service = _service(FakeProvider())
    with pytest.raises(ValidationError):
        await service.search("x" * 101)
