"""Station directory — read-only city → observation station lookup."""

from dataclasses import dataclass
from typing import Iterator, Mapping

from .config import STATIONS
from .errors import UnknownCityError


@dataclass(frozen=True)
class StationProfile:
    city: str
    station_id: str
    display_name: str
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {
            "name": self.display_name,
            "station": self.station_id,
            "lat": self.lat,
            "lon": self.lon,
        }


class StationDirectory:
    """Immutable mapping of city keys to :class:`StationProfile`."""

    def __init__(self, profiles: Mapping[str, StationProfile]):
        self._profiles = dict(profiles)

    @classmethod
    def from_table(cls, table: Mapping[str, dict]) -> "StationDirectory":
        """Build from the ``{city: {"station", "name", "lat", "lon"}}`` shape of ``STATIONS``."""
        return cls({
            city: StationProfile(
                city=city,
                station_id=info["station"],
                display_name=info.get("name", city),
                lat=float(info["lat"]),
                lon=float(info["lon"]),
            )
            for city, info in table.items()
        })

    def get(self, city: str) -> StationProfile | None:
        return self._profiles.get(city)

    def require(self, city: str) -> StationProfile:
        profile = self._profiles.get(city)
        if profile is None:
            raise UnknownCityError(city, self.cities())
        return profile

    def cities(self) -> list[str]:
        return list(self._profiles)

    def subset(self, cities: list[str]) -> "StationDirectory":
        """Directory restricted to *cities*; unknown keys raise."""
        return StationDirectory({c: self.require(c) for c in cities})

    def to_dict(self) -> dict:
        return {city: p.to_dict() for city, p in self._profiles.items()}

    def __contains__(self, city: object) -> bool:
        return city in self._profiles

    def __iter__(self) -> Iterator[StationProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


def default_directory() -> StationDirectory:
    return StationDirectory.from_table(STATIONS)
