from __future__ import annotations

from app.schemas.weather import WeatherCondition


UNKNOWN = "Unknown"


# Weatherstack condition code -> canonical condition id.
WEATHERSTACK_CODE_MAP = {
    113: 800,  # Sunny / Clear
    116: 802,  # Partly cloudy
    119: 803,  # Cloudy
    122: 804,  # Overcast
    143: 701,  # Mist
    176: 500,  # Patchy rain possible
    179: 600,  # Patchy snow possible
    182: 611,  # Patchy sleet possible
    185: 301,  # Patchy freezing drizzle possible
    200: 210,  # Thundery outbreaks possible
    227: 601,  # Blowing snow
    230: 602,  # Blizzard
    248: 741,  # Fog
    260: 741,  # Freezing fog
    263: 300,  # Patchy light drizzle
    266: 300,  # Light drizzle
    281: 301,  # Freezing drizzle
    284: 302,  # Heavy freezing drizzle
    293: 500,  # Patchy light rain
    296: 500,  # Light rain
    299: 501,  # Moderate rain at times
    302: 501,  # Moderate rain
    305: 502,  # Heavy rain at times
    308: 502,  # Heavy rain
    311: 511,  # Light freezing rain
    314: 511,  # Moderate or heavy freezing rain
    317: 611,  # Light sleet
    320: 611,  # Moderate or heavy sleet
    323: 600,  # Patchy light snow
    326: 600,  # Light snow
    329: 601,  # Patchy moderate snow
    332: 601,  # Moderate snow
    335: 602,  # Patchy heavy snow
    338: 602,  # Heavy snow
    350: 611,  # Ice pellets
    353: 520,  # Light rain shower
    356: 521,  # Moderate or heavy rain shower
    359: 522,  # Torrential rain shower
    362: 612,  # Light sleet showers
    365: 613,  # Moderate or heavy sleet showers
    368: 620,  # Light snow showers
    371: 621,  # Moderate or heavy snow showers
    374: 611,  # Light showers of ice pellets
    377: 611,  # Moderate or heavy showers of ice pellets
    386: 200,  # Patchy light rain with thunder
    389: 201,  # Moderate or heavy rain with thunder
    392: 200,  # Patchy light snow with thunder
    395: 202,  # Moderate or heavy snow with thunder
}


def weather_main(code: int) -> str:
    """Bucket a canonical condition id into its category."""
    if 200 <= code < 300:
        return "Thunderstorm"
    if 300 <= code < 400:
        return "Drizzle"
    if 500 <= code < 600:
        return "Rain"
    if 600 <= code < 700:
        return "Snow"
    if 700 <= code < 800:
        return "Atmosphere"
    if code == 800:
        return "Clear"
    if code > 800:
        return "Clouds"
    return UNKNOWN


def weather_icon(code: int, *, is_day: bool = True) -> str:
    suffix = "d" if is_day else "n"
    if 200 <= code < 300:
        base = "11"
    elif 300 <= code < 400:
        base = "09"
    elif 500 <= code < 600:
        base = "13" if code == 511 else "10"
    elif 600 <= code < 700:
        base = "13"
    elif 700 <= code < 800:
        base = "50"
    elif code == 801:
        base = "02"
    elif code == 802:
        base = "03"
    elif code in (803, 804):
        base = "04"
    else:
        base = "01"
    return f"{base}{suffix}"


def from_weatherstack(code: int) -> int:
    return WEATHERSTACK_CODE_MAP.get(code, 0)


def make_condition(
    code: int,
    description: str | None = None,
    *,
    icon: str | None = None,
    is_day: bool = True,
) -> WeatherCondition:
    main = weather_main(code)
    return WeatherCondition(
        id=code,
        main=main,
        description=(description or "").strip() or main.lower(),
        icon=icon or weather_icon(code, is_day=is_day),
    )
