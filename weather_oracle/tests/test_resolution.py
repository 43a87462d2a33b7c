"""Tests for weather_oracle.resolution — resolving past predictions."""

from __future__ import annotations

import json
import math
import threading
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from weather_oracle.errors import CollaboratorError, CorruptLedgerError
from weather_oracle.ledger import PredictionLedger, PredictionRecord
from weather_oracle.resolution import (
    daily_high,
    day_window,
    reading_fahrenheit,
    resolve_pending,
    resolve_record,
    to_fahrenheit,
)
from weather_oracle.sources import Reading
from weather_oracle.stations import default_directory

CI = {
    "50%": {"low": 78.7, "high": 80.7},
    "80%": {"low": 77.7, "high": 81.7},
    "95%": {"low": 76.6, "high": 82.8},
}


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeObservationSource:
    """Returns canned readings per station; records every request."""

    def __init__(self, readings: dict[str, list[Reading]] | None = None, failing: set[str] | None = None):
        self.readings = readings or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, datetime, datetime]] = []

    async def observations(self, station_id, start, end):
        self.calls.append((station_id, start, end))
        if station_id in self.failing:
            raise CollaboratorError(f"{station_id} down")
        return list(self.readings.get(station_id, []))


@pytest.fixture
def ledger(tmp_path):
    return PredictionLedger(str(tmp_path / "predictions.json"))


@pytest.fixture
def stations():
    return default_directory()


def _log(ledger, city, when, mu=79.7, sigma=1.56):
    ledger.log_prediction(city, 80, mu, sigma, CI, now=when)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_to_fahrenheit():
    assert to_fahrenheit(100.0, celsius=True) == pytest.approx(212.0)
    assert to_fahrenheit(0.0, celsius=True) == pytest.approx(32.0)
    assert to_fahrenheit(75.0, celsius=False) == 75.0


def test_daily_high_converts_celsius_and_skips_invalid():
    readings = [
        Reading("2026-07-14T10:00:00Z", 85.0, "wmoUnit:degF"),
        Reading("2026-07-14T18:00:00Z", 30.0, "wmoUnit:degC"),  # 86.0°F
        Reading("2026-07-14T19:00:00Z", None, "wmoUnit:degC"),
        Reading("2026-07-14T20:00:00Z", "n/a", "wmoUnit:degC"),  # type: ignore[arg-type]
        Reading("2026-07-14T21:00:00Z", math.nan, "wmoUnit:degC"),
    ]
    assert daily_high(readings) == 86.0


def test_daily_high_plain_unit_codes():
    assert daily_high([Reading("t", 20.0, "C"), Reading("t", 67.0, "F")]) == 68.0


def test_reading_fahrenheit_rejects_bool_and_non_finite():
    assert reading_fahrenheit(Reading("t", True)) is None  # type: ignore[arg-type]
    assert reading_fahrenheit(Reading("t", math.inf)) is None
    assert reading_fahrenheit(Reading("t", math.nan, "wmoUnit:degC")) is None
    assert reading_fahrenheit(Reading("t", 25.0, "wmoUnit:degC")) == pytest.approx(77.0)


def test_daily_high_none_when_no_valid_reading():
    assert daily_high([]) is None
    assert daily_high([Reading("t", None)]) is None


def test_day_window_covers_utc_day():
    start, end = day_window("2026-07-14")
    assert start == _utc(2026, 7, 14, 0, 0, 0)
    assert end == _utc(2026, 7, 14, 23, 59, 59)


def test_resolve_record_fills_error_and_coverage():
    rec = PredictionRecord(
        city="NYC", date="2026-07-14", created_at="", forecast_high=80,
        predicted_mean=79.7, predicted_sigma=1.56,
        ci80={"low": 77.7, "high": 81.7}, ci95={"low": 76.6, "high": 82.8},
    )
    out = resolve_record(rec, 81.04)
    assert out.resolved is True
    assert out.actual_high == 81.0
    assert out.error == pytest.approx(1.3)
    assert out.within80 is True
    assert out.within95 is True
    assert rec.resolved is False  # original untouched


def test_resolve_record_bounds_inclusive():
    rec = PredictionRecord(
        city="NYC", date="2026-07-14", created_at="", forecast_high=80,
        predicted_mean=79.7, predicted_sigma=1.56,
        ci80={"low": 77.7, "high": 81.7}, ci95={"low": 76.6, "high": 82.8},
    )
    assert resolve_record(rec, 81.7).within80 is True
    out = resolve_record(rec, 82.9)
    assert out.within80 is False
    assert out.within95 is False


# ---------------------------------------------------------------------------
# resolve_pending
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_resolves_past_day_only(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    _log(ledger, "NYC", _utc(2026, 7, 15, 1))
    source = FakeObservationSource({"KNYC": [
        Reading("2026-07-14T12:00:00Z", 78.0),
        Reading("2026-07-14T19:00:00Z", 82.0),
    ]})

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    by_date = {r.date: r for r in records}
    assert by_date["2026-07-14"].resolved is True
    assert by_date["2026-07-14"].actual_high == 82.0
    assert by_date["2026-07-14"].error == pytest.approx(2.3)
    assert by_date["2026-07-14"].within80 is False
    assert by_date["2026-07-14"].within95 is True
    assert by_date["2026-07-15"].resolved is False
    assert source.calls == [("KNYC", _utc(2026, 7, 14), _utc(2026, 7, 14, 23, 59, 59))]


@pytest.mark.asyncio
async def test_future_record_never_resolved(ledger, stations):
    _log(ledger, "Miami", _utc(2026, 7, 20, 12))
    source = FakeObservationSource({"KMIA": [Reading("2026-07-20T18:00:00Z", 91.0)]})

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 12))

    assert records[0].resolved is False
    assert source.calls == []


@pytest.mark.asyncio
async def test_no_readings_stays_pending_then_retries(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    source = FakeObservationSource({"KNYC": [Reading("2026-07-14T12:00:00Z", None)]})

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))
    assert records[0].resolved is False

    source.readings["KNYC"] = [Reading("2026-07-14T20:00:00Z", 27.0, "wmoUnit:degC")]
    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 3))
    assert records[0].resolved is True
    assert records[0].actual_high == 80.6


@pytest.mark.asyncio
async def test_collaborator_failure_is_isolated(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    _log(ledger, "Miami", _utc(2026, 7, 14, 15))
    source = FakeObservationSource(
        {"KMIA": [Reading("2026-07-14T19:00:00Z", 90.0)]},
        failing={"KNYC"},
    )

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    by_city = {r.city: r for r in records}
    assert by_city["NYC"].resolved is False
    assert by_city["Miami"].resolved is True


@pytest.mark.asyncio
async def test_unknown_station_left_pending(ledger, stations):
    _log(ledger, "Atlantis", _utc(2026, 7, 14, 15))
    source = FakeObservationSource()

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    assert records[0].resolved is False
    assert source.calls == []


@pytest.mark.asyncio
async def test_already_resolved_untouched(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    source = FakeObservationSource({"KNYC": [Reading("2026-07-14T19:00:00Z", 82.0)]})
    await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    source.readings["KNYC"] = [Reading("2026-07-14T19:00:00Z", 99.0)]
    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 16, 2))

    assert records[0].actual_high == 82.0
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_no_write_when_nothing_changes(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    source = FakeObservationSource({"KNYC": []})

    with patch.object(PredictionLedger, "_write") as write:
        await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    write.assert_not_called()


@pytest.mark.asyncio
async def test_bad_date_in_store_is_corruption(ledger, stations):
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    with open(ledger.path) as f:
        raw = json.load(f)
    raw[0]["date"] = "15/07/2026"
    with open(ledger.path, "w") as f:
        json.dump(raw, f)

    with pytest.raises(CorruptLedgerError):
        await resolve_pending(ledger, FakeObservationSource(), stations, now=_utc(2026, 7, 16, 2))


class ThreadRecordingLedger(PredictionLedger):
    """Notes which thread performs each ledger operation."""

    def __init__(self, path):
        super().__init__(path)
        self.threads: list[int] = []

    def load_all(self):
        self.threads.append(threading.get_ident())
        return super().load_all()

    def update(self, mutate):
        self.threads.append(threading.get_ident())
        return super().update(mutate)


@pytest.mark.asyncio
async def test_ledger_io_runs_off_the_event_loop(tmp_path, stations):
    ledger = ThreadRecordingLedger(str(tmp_path / "predictions.json"))
    _log(ledger, "NYC", _utc(2026, 7, 14, 15))
    ledger.threads.clear()
    source = FakeObservationSource({"KNYC": [Reading("2026-07-14T19:00:00Z", 82.0)]})

    records = await resolve_pending(ledger, source, stations, now=_utc(2026, 7, 15, 2))

    assert records[0].resolved is True
    loop_thread = threading.get_ident()
    assert len(ledger.threads) == 3  # load, update, reload
    assert loop_thread not in ledger.threads
