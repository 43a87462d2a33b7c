"""Normal distribution helpers — erf, CDF and quantile, zero dependencies."""

import math

from .errors import InputError

# Abramowitz & Stegun 7.1.26 (max abs error ~1.5e-7)
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911

# Rational approximation of the inverse normal CDF (lower/upper tail + center)
_Q_A = (
    -3.969683028665376e+01, 2.209460984245205e+02, -2.759285104469687e+02,
    1.383577518672690e+02, -3.066479806614716e+01, 2.506628277459239e+00,
)
_Q_B = (
    -5.447609879822406e+01, 1.615858368580409e+02, -1.556989798598866e+02,
    6.680131188771972e+01, -1.328068155288572e+01,
)
_Q_C = (
    -7.784894002430293e-03, -3.223964580411365e-01, -2.400758277161838e+00,
    -2.549732539343734e+00, 4.374664141464968e+00, 2.938163982698783e+00,
)
_Q_D = (
    7.784695709041462e-03, 3.224671290700398e-01, 2.445134137142996e+00,
    3.754408661907416e+00,
)

P_LOW = 0.02425
P_HIGH = 1.0 - P_LOW


def erf(x: float) -> float:
    """Error function, odd-symmetric by construction."""
    sign = 1.0 if x >= 0 else -1.0
    x = abs(x)
    t = 1.0 / (1.0 + _P * x)
    y = 1.0 - (((((_A5 * t + _A4) * t) + _A3) * t + _A2) * t + _A1) * t * math.exp(-x * x)
    return sign * y


def normal_cdf(x: float, mu: float = 0.0, sigma: float = 1.0) -> float:
    """P(X <= x) for X ~ N(mu, sigma²).

    ``sigma <= 0`` degenerates to a step at ``mu`` instead of dividing by zero.
    """
    if sigma <= 0:
        return 1.0 if x >= mu else 0.0
    return 0.5 * (1.0 + erf((x - mu) / (sigma * math.sqrt(2.0))))


def _tail(q: float) -> float:
    c, d = _Q_C, _Q_D
    num = ((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]
    den = (((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1.0
    return num / den


def normal_quantile(p: float, mu: float = 0.0, sigma: float = 1.0) -> float:
    """Inverse of :func:`normal_cdf` for ``p`` strictly inside (0, 1).

    Raises:
        InputError: ``p`` outside (0, 1) or non-positive ``sigma``.
    """
    if not 0.0 < p < 1.0:
        raise InputError(f"quantile probability must be in (0, 1), got {p!r}")
    if sigma <= 0:
        raise InputError(f"quantile sigma must be positive, got {sigma!r}")

    if p < P_LOW:
        z = _tail(math.sqrt(-2.0 * math.log(p)))
    elif p <= P_HIGH:
        a, b = _Q_A, _Q_B
        q = p - 0.5
        r = q * q
        num = (((((a[0] * r + a[1]) * r + a[2]) * r + a[3]) * r + a[4]) * r + a[5]) * q
        den = ((((b[0] * r + b[1]) * r + b[2]) * r + b[3]) * r + b[4]) * r + 1.0
        z = num / den
    else:
        z = -_tail(math.sqrt(-2.0 * math.log(1.0 - p)))
    return mu + sigma * z
