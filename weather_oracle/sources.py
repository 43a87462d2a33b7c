"""Contracts for the external weather collaborators.

Implementations raise :class:`~weather_oracle.errors.CollaboratorError` when
the upstream service is unavailable or its payload is unusable; callers treat
that as "skip this city/record and retry later".
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class Forecast:
    high: float | None
    low: float | None


@dataclass(frozen=True)
class Reading:
    timestamp: str  # ISO 8601
    value: float | None
    unit: str = "degF"
    humidity: float | None = None  # relative humidity, %
    wind_speed_kmh: float | None = None
    description: str = ""

    def is_celsius(self) -> bool:
        unit = (self.unit or "").strip()
        return unit.endswith("degC") or unit.upper() == "C"


class ForecastSource(Protocol):
    async def forecast(self, city: str) -> Forecast:
        ...


class ObservationSource(Protocol):
    async def observations(self, station_id: str, start: datetime, end: datetime) -> list[Reading]:
        ...
