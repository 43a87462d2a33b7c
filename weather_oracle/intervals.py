"""Central confidence intervals of the fitted Gaussian."""

from .distribution import normal_quantile

DEFAULT_LEVELS = (50, 80, 95)


def confidence_intervals(mu: float, sigma: float, levels=DEFAULT_LEVELS) -> dict[str, dict[str, float]]:
    """Map ``"50%"``/``"80%"``/``"95%"`` → ``{"low", "high"}`` rounded to 0.1°F."""
    result = {}
    for level in levels:
        tail = (1.0 - level / 100.0) / 2.0
        result[f"{level}%"] = {
            "low": round(normal_quantile(tail, mu, sigma), 1),
            "high": round(normal_quantile(1.0 - tail, mu, sigma), 1),
        }
    return result
