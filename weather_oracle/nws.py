"""National Weather Service (api.weather.gov) forecast and observation sources.

Thin adapters over the public NWS JSON API implementing
:class:`~weather_oracle.sources.ForecastSource` and
:class:`~weather_oracle.sources.ObservationSource`.
"""

import logging
from datetime import datetime, timezone

from .errors import CollaboratorError, UnknownCityError
from .http_client import fetch_json
from .sources import Forecast, Reading
from .stations import StationDirectory

logger = logging.getLogger(__name__)

NWS_API_BASE = "https://api.weather.gov"
_FORECAST_PERIODS = 4  # today/tonight/tomorrow/tomorrow night


def _headers(user_agent: str) -> dict:
    # NWS rejects requests without an identifying User-Agent
    return {"User-Agent": user_agent, "Accept": "application/geo+json"}


def _iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_forecast(data: dict) -> Forecast:
    """First daytime high and first overnight low among the leading periods."""
    periods = (data.get("properties") or {}).get("periods") or []
    high = low = None
    for p in periods[:_FORECAST_PERIODS]:
        temp = p.get("temperature")
        if temp is None:
            continue
        if p.get("isDaytime") and high is None:
            high = float(temp)
        elif not p.get("isDaytime") and low is None:
            low = float(temp)
    return Forecast(high=high, low=low)


def _value(props: dict, key: str):
    return (props.get(key) or {}).get("value")


def parse_observations(data: dict) -> list[Reading]:
    """Readings from an observations FeatureCollection, sorted by time."""
    readings = []
    for feature in data.get("features") or []:
        props = feature.get("properties") or {}
        temp = props.get("temperature") or {}
        ts = props.get("timestamp")
        if ts is None:
            continue
        readings.append(Reading(
            timestamp=str(ts),
            value=temp.get("value"),
            unit=temp.get("unitCode") or "wmoUnit:degC",
            humidity=_value(props, "relativeHumidity"),
            wind_speed_kmh=_value(props, "windSpeed"),
            description=props.get("textDescription") or "",
        ))
    readings.sort(key=lambda r: r.timestamp)
    return readings


class NwsForecastSource:
    """Point forecast via ``/points/{lat},{lon}`` → gridpoint forecast."""

    def __init__(
        self,
        stations: StationDirectory,
        user_agent: str,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.stations = stations
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def _get(self, url: str, params: dict | None = None):
        return await fetch_json(
            url, params=params, headers=_headers(self.user_agent),
            timeout=self.timeout, max_retries=self.max_retries, base_delay=self.base_delay,
        )

    async def forecast(self, city: str) -> Forecast:
        station = self.stations.get(city)
        if station is None:
            raise UnknownCityError(city, self.stations.cities())

        points = await self._get(f"{NWS_API_BASE}/points/{station.lat},{station.lon}")
        forecast_url = ((points or {}).get("properties") or {}).get("forecast")
        if not forecast_url:
            raise CollaboratorError(f"NWS points lookup failed for {city}")

        data = await self._get(forecast_url)
        if not data:
            raise CollaboratorError(f"NWS forecast unavailable for {city}")
        try:
            return parse_forecast(data)
        except (TypeError, ValueError, AttributeError) as exc:
            raise CollaboratorError(f"Malformed NWS forecast for {city}: {exc}") from exc


class NwsObservationSource:
    """Station observations over a UTC window via ``/stations/{id}/observations``."""

    def __init__(self, user_agent: str, timeout: int = 30, max_retries: int = 3, base_delay: float = 1.0):
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def observations(self, station_id: str, start: datetime, end: datetime) -> list[Reading]:
        data = await fetch_json(
            f"{NWS_API_BASE}/stations/{station_id}/observations",
            params={"start": _iso_z(start), "end": _iso_z(end)},
            headers=_headers(self.user_agent),
            timeout=self.timeout, max_retries=self.max_retries, base_delay=self.base_delay,
        )
        if data is None:
            raise CollaboratorError(f"NWS observations unavailable for {station_id}")
        try:
            readings = parse_observations(data)
        except (TypeError, AttributeError) as exc:
            raise CollaboratorError(f"Malformed NWS observations for {station_id}: {exc}") from exc
        logger.debug("NWS %s: %d readings %s → %s", station_id, len(readings), _iso_z(start), _iso_z(end))
        return readings
