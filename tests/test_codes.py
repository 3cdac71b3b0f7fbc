import pytest

from app.services.weather.codes import from_weatherstack, make_condition, weather_icon, weather_main


@pytest.mark.parametrize(
    "code, expected",
    [
        (201, "Thunderstorm"),
        (302, "Drizzle"),
        (511, "Rain"),
        (601, "Snow"),
        (741, "Atmosphere"),
        (800, "Clear"),
        (803, "Clouds"),
        (0, "Unknown"),
        (450, "Unknown"),
    ],
)
def test_weather_main_buckets(code, expected):
    assert weather_main(code) == expected


def test_weather_icon_follows_bucket_and_daylight():
    assert weather_icon(800) == "01d"
    assert weather_icon(800, is_day=False) == "01n"
    assert weather_icon(211) == "11d"
    assert weather_icon(804, is_day=False) == "04n"


def test_weatherstack_codes_translate_to_canonical_ids():
    assert weather_main(from_weatherstack(113)) == "Clear"
    assert weather_main(from_weatherstack(119)) == "Clouds"
    assert weather_main(from_weatherstack(248)) == "Atmosphere"
    assert weather_main(from_weatherstack(296)) == "Rain"
    assert weather_main(from_weatherstack(338)) == "Snow"
    assert weather_main(from_weatherstack(389)) == "Thunderstorm"
    assert weather_main(from_weatherstack(12345)) == "Unknown"


def test_make_condition_falls_back_to_category_description():
    condition = make_condition(500, None)
    assert condition.main == "Rain"
    assert condition.description == "rain"
    assert condition.icon == "10d"

    kept = make_condition(701, "mist", icon="50n")
    assert (kept.main, kept.description, kept.icon) == ("Atmosphere", "mist", "50n")
