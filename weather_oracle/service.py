"""Oracle facade — predict, log, resolve and report accuracy for the configured cities."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import CollaboratorError
from .intervals import confidence_intervals
from .ledger import PredictionLedger, PredictionRecord
from .metrics import aggregate
from .probability import CalibrationEngine, CalibrationResult
from .resolution import reading_fahrenheit, resolve_pending
from .sources import ForecastSource, ObservationSource, Reading
from .stations import StationDirectory, StationProfile

logger = logging.getLogger(__name__)

MODEL_NAME = "Gaussian NWS-calibrated v1.0"
LIVE_WINDOW = timedelta(hours=3)  # readings older than this are not "current"


@dataclass
class CityPrediction:
    city: str
    station: StationProfile
    forecast_high: float
    forecast_low: float | None
    current_temp_f: float | None
    observed_at: str | None
    observation: dict | None
    calibration: CalibrationResult
    intervals: dict
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "city": self.city,
            "station": self.station.display_name,
            "station_id": self.station.station_id,
            "model": MODEL_NAME,
            "current_temp_f": self.current_temp_f,
            "observed_at": self.observed_at,
            "forecast_high_f": self.forecast_high,
            "forecast_low_f": self.forecast_low,
            "prediction": self.calibration.to_dict(),
            "confidence_intervals": self.intervals,
            "observation": self.observation,
        }


def _observation_block(reading: Reading | None) -> dict | None:
    if reading is None:
        return None
    return {
        "humidity": reading.humidity,
        "wind_speed_kmh": reading.wind_speed_kmh,
        "description": reading.description,
        "timestamp": reading.timestamp,
    }


class WeatherOracle:
    def __init__(
        self,
        stations: StationDirectory,
        forecast_source: ForecastSource,
        observation_source: ObservationSource,
        ledger: PredictionLedger,
        engine: CalibrationEngine | None = None,
    ):
        self.stations = stations
        self.forecast_source = forecast_source
        self.observation_source = observation_source
        self.ledger = ledger
        self.engine = engine or CalibrationEngine()

    async def _live_reading(self, station: StationProfile, now: datetime) -> Reading | None:
        """Most recent valid reading in the last few hours; None when unavailable."""
        try:
            readings = await self.observation_source.observations(station.station_id, now - LIVE_WINDOW, now)
        except CollaboratorError as exc:
            logger.warning("Live reading unavailable for %s: %s", station.city, exc)
            return None
        valid = [r for r in readings if reading_fahrenheit(r) is not None]
        if not valid:
            return None
        return max(valid, key=lambda r: r.timestamp)

    async def predict(self, city: str, now: datetime | None = None) -> CityPrediction:
        """Calibrated prediction for *city*, logged to the ledger.

        Raises:
            UnknownCityError: *city* not in the station directory.
            CollaboratorError: no usable forecast high.
        """
        station = self.stations.require(city)
        if now is None:
            now = datetime.now(timezone.utc)

        forecast, reading = await asyncio.gather(
            self.forecast_source.forecast(city),
            self._live_reading(station, now),
        )
        if forecast.high is None:
            raise CollaboratorError(f"Forecast high unavailable for {city}")

        current = None
        if reading is not None:
            current = round(reading_fahrenheit(reading), 1)

        result = self.engine.calibrate(city, forecast.high, current_temp_f=current, now=now)
        ci = confidence_intervals(result.mu, result.sigma)
        await asyncio.to_thread(
            self.ledger.log_prediction, city, forecast.high, result.mu, result.sigma, ci, now,
        )

        return CityPrediction(
            city=city,
            station=station,
            forecast_high=forecast.high,
            forecast_low=forecast.low,
            current_temp_f=current,
            observed_at=reading.timestamp if reading else None,
            observation=_observation_block(reading),
            calibration=result,
            intervals=ci,
            timestamp=now.astimezone(timezone.utc).isoformat(),
        )

    async def predict_all(self, now: datetime | None = None) -> dict[str, CityPrediction]:
        """Predict every city concurrently; cities whose sources fail are omitted."""
        if now is None:
            now = datetime.now(timezone.utc)
        cities = self.stations.cities()
        results = await asyncio.gather(
            *(self.predict(city, now) for city in cities),
            return_exceptions=True,
        )
        predictions = {}
        for city, res in zip(cities, results):
            if isinstance(res, CollaboratorError):
                logger.warning("Skipping %s: %s", city, res)
                continue
            if isinstance(res, BaseException):
                raise res
            predictions[city] = res
        logger.info("Predicted %d/%d cities", len(predictions), len(cities))
        return predictions

    async def resolve(self, now: datetime | None = None) -> list[PredictionRecord]:
        return await resolve_pending(self.ledger, self.observation_source, self.stations, now=now)

    async def accuracy(self, now: datetime | None = None) -> dict:
        """Resolve whatever is due, then summarize the ledger."""
        records = await self.resolve(now=now)
        return aggregate(records)
