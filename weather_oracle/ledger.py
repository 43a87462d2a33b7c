"""Prediction ledger — one record per (city, UTC date), persisted as a JSON array.

The ledger is the sole writer of its file. Every write is a read-modify-write
performed under an in-process lock plus an exclusive ``fcntl`` lock on
``<path>.lock``, and lands through a temp file + ``os.replace`` so readers
never observe a half-written array.
"""

import contextlib
import fcntl
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from .errors import CorruptLedgerError, PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


@dataclass
class PredictionRecord:
    city: str
    date: str  # UTC calendar day, YYYY-MM-DD
    created_at: str
    forecast_high: float
    predicted_mean: float
    predicted_sigma: float
    ci80: dict
    ci95: dict
    actual_high: float | None = None
    resolved: bool = False
    error: float | None = None
    within80: bool | None = None
    within95: bool | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.city, self.date

    def to_dict(self) -> dict:
        return {
            "city": self.city,
            "date": self.date,
            "createdAt": self.created_at,
            "forecastHigh": self.forecast_high,
            "predictedMean": self.predicted_mean,
            "predictedSigma": self.predicted_sigma,
            "ci80": self.ci80,
            "ci95": self.ci95,
            "actualHigh": self.actual_high,
            "resolved": self.resolved,
            "error": self.error,
            "within80": self.within80,
            "within95": self.within95,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PredictionRecord":
        # Raises ValueError on a non-ISO date so the store reads as corrupt
        day = date.fromisoformat(d["date"]).isoformat()
        return cls(
            city=d["city"],
            date=day,
            created_at=d.get("createdAt", ""),
            forecast_high=d["forecastHigh"],
            predicted_mean=d["predictedMean"],
            predicted_sigma=d["predictedSigma"],
            ci80=dict(d["ci80"]),
            ci95=dict(d["ci95"]),
            actual_high=d.get("actualHigh"),
            resolved=bool(d.get("resolved", False)),
            error=d.get("error"),
            within80=d.get("within80"),
            within95=d.get("within95"),
        )


@contextlib.contextmanager
def ledger_lock(path: str):
    """Exclusive, blocking file lock (fcntl.flock) shared by every writer of *path*."""
    lock_path = path + ".lock"
    fd = open(lock_path, "w")
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


def utc_today(now: datetime | None = None) -> date:
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date()


class PredictionLedger:
    """Append-mostly store of :class:`PredictionRecord`, retention-bounded."""

    def __init__(self, path: str, retention_days: int = DEFAULT_RETENTION_DAYS):
        self.path = str(path)
        self.retention_days = retention_days
        self._lock = threading.Lock()
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    # -- Reads --

    def load_all(self) -> list[PredictionRecord]:
        """Current contents; a missing file is an empty ledger.

        Raises:
            CorruptLedgerError: the file exists but is not a valid record array.
        """
        return self._read()

    # -- Writes --

    def update(self, mutate: Callable[[list[PredictionRecord]], int]) -> int:
        """Serialized load → mutate → persist.

        *mutate* edits the list in place and returns how many records it
        changed; the file is rewritten only when that count is positive.
        """
        with self._lock, ledger_lock(self.path):
            records = self._read()
            changed = mutate(records)
            if changed:
                self._write(records)
        return changed

    def log_prediction(
        self,
        city: str,
        forecast_high: float,
        mu: float,
        sigma: float,
        ci: dict,
        now: datetime | None = None,
    ) -> bool:
        """Record today's prediction for *city* unless one exists; prune expired records.

        Returns True when a new record was appended.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        today = utc_today(now)
        day = today.isoformat()
        appended = False

        def _mutate(records: list[PredictionRecord]) -> int:
            nonlocal appended
            changed = 0
            if not any(r.key == (city, day) for r in records):
                records.append(PredictionRecord(
                    city=city,
                    date=day,
                    created_at=now.astimezone(timezone.utc).isoformat(),
                    forecast_high=forecast_high,
                    predicted_mean=mu,
                    predicted_sigma=sigma,
                    ci80=dict(ci["80%"]),
                    ci95=dict(ci["95%"]),
                ))
                appended = True
                changed += 1
            changed += self._prune(records, today)
            return changed

        self.update(_mutate)
        if appended:
            logger.info("Logged prediction %s %s (mu=%.2f sigma=%.2f)", city, day, mu, sigma)
        else:
            logger.debug("Prediction for %s %s already logged", city, day)
        return appended

    # -- Internals --

    def _prune(self, records: list[PredictionRecord], today: date) -> int:
        cutoff = (today - timedelta(days=self.retention_days)).isoformat()
        before = len(records)
        records[:] = [r for r in records if r.date >= cutoff]
        pruned = before - len(records)
        if pruned:
            logger.info("Pruned %d ledger records older than %s", pruned, cutoff)
        return pruned

    def _read(self) -> list[PredictionRecord]:
        p = Path(self.path)
        if not p.exists():
            logger.info("No ledger found at %s, starting empty", self.path)
            return []
        try:
            with open(p) as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            logger.error("Ledger at %s is not valid JSON: %s", self.path, exc)
            raise CorruptLedgerError(self.path, str(exc)) from exc
        except OSError as exc:
            logger.error("Cannot read ledger at %s: %s", self.path, exc)
            raise PersistenceError(f"Cannot read ledger at {self.path}: {exc}") from exc

        if not isinstance(data, list):
            logger.error("Ledger at %s is not a JSON array", self.path)
            raise CorruptLedgerError(self.path, f"expected array, got {type(data).__name__}")
        try:
            return [PredictionRecord.from_dict(d) for d in data]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Ledger at %s holds a malformed record: %r", self.path, exc)
            raise CorruptLedgerError(self.path, f"malformed record: {exc!r}") from exc

    def _write(self, records: list[PredictionRecord]) -> None:
        """Atomic write: temp file then rename."""
        dir_name = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(suffix=".tmp", dir=dir_name)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Ledger saved to %s (%d records)", self.path, len(records))
