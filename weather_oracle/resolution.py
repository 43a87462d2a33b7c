"""Resolve past predictions against the observed daily high.

A record becomes eligible once its UTC calendar day has fully elapsed. The
observation source is queried outside the ledger lock; outcomes are applied
afterwards through :meth:`PredictionLedger.update`, which re-checks each record
so a concurrent resolution never overwrites an already-resolved entry.
"""

import asyncio
import dataclasses
import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable

from .errors import CollaboratorError
from .ledger import PredictionLedger, PredictionRecord, utc_today
from .sources import ObservationSource, Reading
from .stations import StationDirectory

logger = logging.getLogger(__name__)


def to_fahrenheit(value: float, celsius: bool) -> float:
    return value * 9.0 / 5.0 + 32.0 if celsius else value


def reading_fahrenheit(reading: Reading) -> float | None:
    """Temperature of *reading* in °F, or None when missing, non-numeric or non-finite."""
    if reading.value is None or isinstance(reading.value, bool):
        return None
    try:
        value = float(reading.value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return to_fahrenheit(value, reading.is_celsius())


def daily_high(readings: Iterable[Reading]) -> float | None:
    """Max of the valid readings in °F (0.1 precision), or None if none are valid."""
    best = None
    for r in readings:
        temp_f = reading_fahrenheit(r)
        if temp_f is None:
            continue
        if best is None or temp_f > best:
            best = temp_f
    return round(best, 1) if best is not None else None


def day_window(day: str) -> tuple[datetime, datetime]:
    """``[00:00:00Z, 23:59:59Z]`` of the given ISO date."""
    d = date.fromisoformat(day)
    start = datetime.combine(d, time(0, 0, 0), tzinfo=timezone.utc)
    return start, start + timedelta(days=1) - timedelta(seconds=1)


def is_eligible(record: PredictionRecord, today: date) -> bool:
    return not record.resolved and date.fromisoformat(record.date) < today


def _within(value: float, interval: dict) -> bool:
    return interval["low"] <= value <= interval["high"]


def resolve_record(record: PredictionRecord, actual_high: float) -> PredictionRecord:
    """Resolved copy of *record* with error and interval coverage filled in."""
    actual = round(actual_high, 1)
    return dataclasses.replace(
        record,
        actual_high=actual,
        resolved=True,
        error=round(actual - record.predicted_mean, 1),
        within80=_within(actual, record.ci80),
        within95=_within(actual, record.ci95),
    )


async def resolve_pending(
    ledger: PredictionLedger,
    source: ObservationSource,
    stations: StationDirectory,
    now: datetime | None = None,
) -> list[PredictionRecord]:
    """Fill ``actualHigh`` for every unresolved record whose day has ended.

    Records without data (collaborator failure, no valid readings, unknown
    station) stay pending and are retried on the next call. Returns the full
    ledger after resolution.
    """
    today = utc_today(now)
    # Ledger I/O blocks on file locks, keep it off the event loop
    records = await asyncio.to_thread(ledger.load_all)
    pending = [r for r in records if is_eligible(r, today)]
    if not pending:
        return records

    outcomes: dict[tuple[str, str], float] = {}
    for rec in pending:
        station = stations.get(rec.city)
        if station is None:
            logger.warning("No station for %s, cannot resolve %s", rec.city, rec.date)
            continue
        start, end = day_window(rec.date)
        try:
            readings = await source.observations(station.station_id, start, end)
        except CollaboratorError as exc:
            logger.warning("Observations unavailable for %s %s: %s (will retry)", rec.city, rec.date, exc)
            continue
        high = daily_high(readings)
        if high is None:
            logger.info("No valid readings for %s %s yet", rec.city, rec.date)
            continue
        outcomes[rec.key] = high

    if outcomes:
        def _apply(records: list[PredictionRecord]) -> int:
            changed = 0
            for i, rec in enumerate(records):
                if rec.key in outcomes and is_eligible(rec, today):
                    records[i] = resolve_record(rec, outcomes[rec.key])
                    changed += 1
            return changed

        changed = await asyncio.to_thread(ledger.update, _apply)
        logger.info("Resolved %d of %d pending predictions", changed, len(pending))

    return await asyncio.to_thread(ledger.load_all)
