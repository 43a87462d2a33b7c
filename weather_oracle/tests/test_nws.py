"""Tests for the NWS forecast/observation adapters."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

import weather_oracle.nws as nws
from weather_oracle.errors import CollaboratorError, UnknownCityError
from weather_oracle.sources import Forecast
from weather_oracle.stations import default_directory

FORECAST_PAYLOAD = {
    "properties": {
        "periods": [
            {"name": "Tonight", "isDaytime": False, "temperature": 66},
            {"name": "Tuesday", "isDaytime": True, "temperature": 84},
            {"name": "Tuesday Night", "isDaytime": False, "temperature": 70},
            {"name": "Wednesday", "isDaytime": True, "temperature": 88},
        ]
    }
}

OBS_PAYLOAD = {
    "features": [
        {"properties": {"timestamp": "2026-07-14T19:51:00+00:00",
                        "temperature": {"value": 28.3, "unitCode": "wmoUnit:degC"}}},
        {"properties": {"timestamp": "2026-07-14T05:51:00+00:00",
                        "temperature": {"value": None, "unitCode": "wmoUnit:degC"}}},
        {"properties": {"temperature": {"value": 20.0, "unitCode": "wmoUnit:degC"}}},
    ]
}


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_parse_forecast_first_day_and_night():
    assert nws.parse_forecast(FORECAST_PAYLOAD) == Forecast(high=84.0, low=66.0)


def test_parse_forecast_only_leading_periods():
    periods = [{"isDaytime": False, "temperature": 60}] * 4 + [{"isDaytime": True, "temperature": 80}]
    assert nws.parse_forecast({"properties": {"periods": periods}}) == Forecast(high=None, low=60.0)


def test_parse_forecast_empty():
    assert nws.parse_forecast({}) == Forecast(high=None, low=None)


def test_parse_observations_sorted_and_skips_untimed():
    readings = nws.parse_observations(OBS_PAYLOAD)
    assert [r.timestamp for r in readings] == ["2026-07-14T05:51:00+00:00", "2026-07-14T19:51:00+00:00"]
    assert readings[1].value == 28.3
    assert readings[1].is_celsius()


def test_parse_observations_carries_conditions():
    feature = {"properties": {
        "timestamp": "2026-07-14T19:51:00+00:00",
        "temperature": {"value": 28.3, "unitCode": "wmoUnit:degC"},
        "relativeHumidity": {"value": 64.5, "unitCode": "wmoUnit:percent"},
        "windSpeed": {"value": 18.5, "unitCode": "wmoUnit:km_h-1"},
        "textDescription": "Mostly Sunny",
    }}
    reading = nws.parse_observations({"features": [feature]})[0]
    assert reading.humidity == 64.5
    assert reading.wind_speed_kmh == 18.5
    assert reading.description == "Mostly Sunny"


def test_parse_observations_missing_conditions():
    reading = nws.parse_observations(OBS_PAYLOAD)[1]
    assert reading.humidity is None
    assert reading.wind_speed_kmh is None
    assert reading.description == ""


@pytest.mark.asyncio
async def test_forecast_source_two_step_lookup():
    points = {"properties": {"forecast": "https://api.weather.gov/gridpoints/OKX/33,37/forecast"}}
    fetch = AsyncMock(side_effect=[points, FORECAST_PAYLOAD])
    source = nws.NwsForecastSource(default_directory(), "(test, test@example.com)")

    with patch.object(nws, "fetch_json", fetch):
        result = await source.forecast("NYC")

    assert result == Forecast(high=84.0, low=66.0)
    first_url = fetch.call_args_list[0].args[0]
    assert first_url == "https://api.weather.gov/points/40.7831,-73.9712"
    assert fetch.call_args_list[1].args[0] == points["properties"]["forecast"]
    assert fetch.call_args_list[0].kwargs["headers"]["User-Agent"] == "(test, test@example.com)"


@pytest.mark.asyncio
async def test_forecast_source_points_failure():
    source = nws.NwsForecastSource(default_directory(), "ua")
    with patch.object(nws, "fetch_json", AsyncMock(return_value=None)):
        with pytest.raises(CollaboratorError):
            await source.forecast("NYC")


@pytest.mark.asyncio
async def test_forecast_source_unknown_city():
    source = nws.NwsForecastSource(default_directory(), "ua")
    with pytest.raises(UnknownCityError):
        await source.forecast("Atlantis")


@pytest.mark.asyncio
async def test_observation_source_window_params():
    fetch = AsyncMock(return_value=OBS_PAYLOAD)
    source = nws.NwsObservationSource("ua")

    with patch.object(nws, "fetch_json", fetch):
        readings = await source.observations("KNYC", _utc(2026, 7, 14), _utc(2026, 7, 14, 23, 59, 59))

    assert len(readings) == 2
    url = fetch.call_args.args[0]
    assert url == "https://api.weather.gov/stations/KNYC/observations"
    assert fetch.call_args.kwargs["params"] == {
        "start": "2026-07-14T00:00:00Z",
        "end": "2026-07-14T23:59:59Z",
    }


@pytest.mark.asyncio
async def test_observation_source_failure():
    source = nws.NwsObservationSource("ua")
    with patch.object(nws, "fetch_json", AsyncMock(return_value=None)):
        with pytest.raises(CollaboratorError):
            await source.observations("KNYC", _utc(2026, 7, 14), _utc(2026, 7, 15))
