import math
from typing import NamedTuple, Sequence

import numpy as np
from scipy import stats

MAD_SCALE = 1.4826


class LinearFit(NamedTuple):
    slope: float
    intercept: float
    r_squared: float
    r: float


def is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return float(np.std(values))


def median(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return float(np.median(values))


def median_absolute_deviation(values: Sequence[float]) -> float | None:
    center = median(values)
    if center is None:
        return None
    return float(np.median(np.abs(np.asarray(values, dtype=float) - center)))


def coefficient_of_variation(values: Sequence[float]) -> float | None:
    avg = mean(values)
    if avg is None or abs(avg) < 1e-9:
        return None
    return population_std(values) / abs(avg)


def linear_fit(xs: Sequence[float], ys: Sequence[float]) -> LinearFit | None:
    """Ordinary least squares ``y = intercept + slope * x``.

    Returns ``None`` when there are fewer than two points or no spread in ``xs``;
    ``linregress`` raises on identical x values.
    """
    if len(xs) < 2 or len(xs) != len(ys):
        return None
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if np.ptp(x) == 0:
        return None
    if np.ptp(y) == 0:
        return LinearFit(slope=0.0, intercept=float(y[0]), r_squared=0.0, r=0.0)
    result = stats.linregress(x, y)
    r = float(result.rvalue)
    return LinearFit(slope=float(result.slope), intercept=float(result.intercept), r_squared=r * r, r=r)


def theil_sen_fit(xs: Sequence[float], ys: Sequence[float]) -> tuple[float, float] | None:
    if len(xs) < 2 or np.ptp(np.asarray(xs, dtype=float)) == 0:
        return None
    slope, intercept, _, _ = stats.theilslopes(np.asarray(ys, dtype=float), np.asarray(xs, dtype=float))
    return float(slope), float(intercept)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    if len(xs) < 3 or len(xs) != len(ys):
        return None
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    # pearsonr warns and returns nan on constant input
    if np.std(x) < 1e-12 or np.std(y) < 1e-12:
        return None
    r, _ = stats.pearsonr(x, y)
    r = float(r)
    return r if math.isfinite(r) else None


def residuals(xs: Sequence[float], ys: Sequence[float], slope: float, intercept: float) -> list[float]:
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    return [float(v) for v in y - (intercept + slope * x)]


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
