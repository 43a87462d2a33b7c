"""Gaussian calibration of the daily high — sigma by city/season and time of day, live-reading adjustment, bracket pricing."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Sequence

from .config import HISTORICAL_SIGMA
from .distribution import normal_cdf

logger = logging.getLogger(__name__)

DEFAULT_SIGMA = 3.0
MIN_SIGMA = 0.5
WINDOW_HOURS = 12.0  # each half of the UTC day is one forecasting window
BRACKET_WIDTH = 2
BRACKET_COUNT = 6

PROB_FLOOR = 0.001
PROB_CEIL = 0.999


@dataclass
class Bracket:
    label: str
    low: float | None
    high: float | None
    probability: float

    def to_dict(self) -> dict:
        return {"label": self.label, "low": self.low, "high": self.high, "probability": self.probability}


@dataclass
class CalibrationResult:
    mu: float
    sigma: float
    brackets: list[Bracket] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mu": self.mu,
            "sigma": self.sigma,
            "brackets": [b.to_dict() for b in self.brackets],
        }


class SigmaTable:
    """Historical forecast-error std dev by city and month (°F)."""

    def __init__(self, table: Mapping[str, Sequence[float]] | None = None, default: float = DEFAULT_SIGMA):
        self._table = dict(HISTORICAL_SIGMA if table is None else table)
        self.default = default

    def base_sigma(self, city: str, month: int) -> float:
        row = self._table.get(city)
        if not row or not 1 <= month <= len(row):
            return self.default
        return float(row[month - 1]) or self.default


def default_hours_remaining(now: datetime | None = None) -> float:
    """Hours left in the current half of the UTC day, in [0, 12].

    Morning (before 12:00 UTC) counts down to noon, afternoon to midnight.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    hour = now.hour + now.minute / 60.0
    remaining = 12.0 - hour if hour < 12 else 24.0 - hour
    return max(0.0, min(WINDOW_HOURS, remaining))


def adjusted_sigma(
    base_sigma: float,
    hours_remaining: float,
    current_temp: float | None,
    forecast_high: float,
) -> float:
    """Shrink sigma with the square root of the window left and on overshoot."""
    fraction_remaining = max(0.05, min(1.0, hours_remaining / WINDOW_HOURS))
    sigma = base_sigma * math.sqrt(fraction_remaining)
    if current_temp is not None and base_sigma > 0:
        overshoot = current_temp - forecast_high
        if overshoot > 0:
            sigma *= max(0.3, 1.0 - overshoot / (2.0 * base_sigma))
    return max(MIN_SIGMA, sigma)


def adjusted_mean(
    forecast_high: float,
    current_temp: float | None,
    hours_remaining: float,
) -> float:
    """Pull the mean toward the live reading as the window elapses."""
    if current_temp is None:
        return forecast_high
    fraction_elapsed = 1.0 - max(0.0, min(1.0, hours_remaining / WINDOW_HOURS))
    if current_temp >= forecast_high:
        # Already at/above forecast: high is near-locked, keep some upside
        buffer = max(0.0, forecast_high - current_temp) * (1.0 - fraction_elapsed)
        return current_temp + buffer * 0.5 + 0.5
    if fraction_elapsed > 0.7:
        weight = min(0.8, fraction_elapsed)
        return current_temp * weight + forecast_high * (1.0 - weight)
    return forecast_high - (forecast_high - current_temp) * fraction_elapsed * 0.3


def bracket_center(forecast_high: float) -> int:
    """Nearest integer (half up), bumped to the next even integer when odd."""
    center = math.floor(forecast_high + 0.5)
    if center % 2 != 0:
        center += 1
    return center


def generate_brackets(forecast_high: float) -> list[tuple[int | None, int | None]]:
    """Six contiguous ``(low, high)`` ranges; ``None`` marks an open end."""
    center = bracket_center(forecast_high)
    bottom = center - 4
    top = center + 4
    brackets: list[tuple[int | None, int | None]] = [(None, bottom)]
    for i in range(4):
        brackets.append((bottom + i * BRACKET_WIDTH, bottom + (i + 1) * BRACKET_WIDTH))
    brackets.append((top, None))
    return brackets


def bracket_label(low: float | None, high: float | None) -> str:
    if low is None:
        return f"Below {high}°F"
    if high is None:
        return f"{low}°F or above"
    return f"{low}–{high}°F"


def bracket_probability(low: float | None, high: float | None, mu: float, sigma: float) -> float:
    """Raw Gaussian mass of ``[low, high]``; open ends use one-sided tails."""
    if low is None:
        return normal_cdf(high, mu, sigma)
    if high is None:
        return 1.0 - normal_cdf(low, mu, sigma)
    return normal_cdf(high, mu, sigma) - normal_cdf(low, mu, sigma)


def price_brackets(
    forecast_high: float,
    mu: float,
    sigma: float,
    current_temp: float | None = None,
) -> list[Bracket]:
    """Clamp, rule out ranges already exceeded by the live reading, normalize."""
    results = []
    for low, high in generate_brackets(forecast_high):
        prob = bracket_probability(low, high, mu, sigma)
        prob = max(PROB_FLOOR, min(PROB_CEIL, prob))
        if current_temp is not None and high is not None and high <= current_temp:
            prob = PROB_FLOOR
        results.append(Bracket(bracket_label(low, high), low, high, prob))

    total = sum(b.probability for b in results)
    for b in results:
        b.probability = round(b.probability / total, 4)
    # Rounding residual goes to the most likely bracket so the sum stays 1.0
    residual = round(1.0 - sum(b.probability for b in results), 4)
    if residual:
        top = max(results, key=lambda b: b.probability)
        top.probability = round(top.probability + residual, 4)
    return results


class CalibrationEngine:
    """Turns a point forecast (plus optional live reading) into a calibrated distribution."""

    def __init__(self, sigma_table: SigmaTable | None = None):
        self.sigma_table = sigma_table or SigmaTable()

    def calibrate(
        self,
        city: str,
        forecast_high: float,
        current_temp_f: float | None = None,
        hours_remaining: float | None = None,
        now: datetime | None = None,
    ) -> CalibrationResult:
        if now is None:
            now = datetime.now(timezone.utc)
        now = now.astimezone(timezone.utc)
        if hours_remaining is None:
            hours_remaining = default_hours_remaining(now)

        base = self.sigma_table.base_sigma(city, now.month)
        sigma = adjusted_sigma(base, hours_remaining, current_temp_f, forecast_high)
        mu = adjusted_mean(forecast_high, current_temp_f, hours_remaining)
        assert sigma >= MIN_SIGMA, f"sigma {sigma} below floor"

        brackets = price_brackets(forecast_high, mu, sigma, current_temp_f)
        assert len(brackets) == BRACKET_COUNT

        logger.debug(
            "Calibrated %s: forecast=%.1f current=%s hours=%.2f base_sigma=%.2f → mu=%.2f sigma=%.2f",
            city, forecast_high, current_temp_f, hours_remaining, base, mu, sigma,
        )
        return CalibrationResult(mu=round(mu, 2), sigma=round(sigma, 2), brackets=brackets)
