"""Forecast accuracy metrics — MAE, RMSE, bias, interval coverage."""

import math

from .ledger import PredictionRecord

NO_DATA_MESSAGE = "No resolved predictions yet"


def mean_absolute_error(errors: list[float]) -> float | None:
    """mean(|error|). Lower is better."""
    if not errors:
        return None
    return sum(abs(e) for e in errors) / len(errors)


def root_mean_square_error(errors: list[float]) -> float | None:
    """sqrt(mean(error^2)). Penalizes large misses."""
    if not errors:
        return None
    return math.sqrt(sum(e * e for e in errors) / len(errors))


def mean_bias(errors: list[float]) -> float | None:
    """Mean signed error; positive = actual ran hotter than predicted."""
    if not errors:
        return None
    return sum(errors) / len(errors)


def coverage_pct(flags: list[bool | None]) -> float | None:
    """Percentage of True flags."""
    if not flags:
        return None
    return 100.0 * sum(1 for f in flags if f) / len(flags)


def _round(value: float | None, places: int) -> float | None:
    return round(value, places) if value is not None else None


def _summarize(records: list[PredictionRecord]) -> dict:
    errors = [r.error for r in records]
    return {
        "count": len(records),
        "mae": _round(mean_absolute_error(errors), 3),
        "rmse": _round(root_mean_square_error(errors), 3),
        "bias": _round(mean_bias(errors), 3),
        "within_80_pct": _round(coverage_pct([r.within80 for r in records]), 1),
        "within_95_pct": _round(coverage_pct([r.within95 for r in records]), 1),
    }


def aggregate(records: list[PredictionRecord]) -> dict:
    """Overall and per-city accuracy of the resolved part of the ledger."""
    resolved = [r for r in records if r.resolved and r.error is not None]
    stats: dict = {
        "total_predictions": len(records),
        "resolved": len(resolved),
        "pending": len(records) - len(resolved),
    }
    if not resolved:
        stats["message"] = NO_DATA_MESSAGE
        return stats

    by_city: dict[str, list[PredictionRecord]] = {}
    for r in resolved:
        by_city.setdefault(r.city, []).append(r)

    dates = sorted(r.date for r in resolved)
    stats["overall"] = _summarize(resolved)
    stats["by_city"] = {city: _summarize(recs) for city, recs in sorted(by_city.items())}
    stats["tracking_since"] = dates[0]
    stats["last_resolved"] = dates[-1]
    return stats
