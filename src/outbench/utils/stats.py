"""Small descriptive-statistics helpers shared by metrics and verification.

All helpers return ``0.0`` for empty input instead of raising, so that
degenerate benchmark results (no coverage, no relays) never produce NaN.
``percentile`` uses the floor index ``floor((n - 1) * p)`` on ascending
input rather than interpolating.
"""

from __future__ import annotations

import math
from collections.abc import Sequence


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def median(sorted_values: Sequence[float]) -> float:
    """Median of an ascending sequence (mean of the middle pair for even n)."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2 == 0:
        return (sorted_values[mid - 1] + sorted_values[mid]) / 2
    return float(sorted_values[mid])


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank-below percentile of an ascending sequence, ``p`` in [0, 1]."""
    if not sorted_values:
        return 0.0
    clamped = min(max(p, 0.0), 1.0)
    return float(sorted_values[math.floor((len(sorted_values) - 1) * clamped)])


def pstdev(values: Sequence[float]) -> float:
    """Population standard deviation; ``0.0`` for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    m = mean(values)
    return math.sqrt(math.fsum((v - m) ** 2 for v in values) / len(values))


def ols_slope(values: Sequence[float]) -> float:
    """Least-squares slope of *values* against their index ``0..n-1``."""
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = mean(values)
    numerator = math.fsum((i - x_mean) * (y - y_mean) for i, y in enumerate(values))
    denominator = math.fsum((i - x_mean) ** 2 for i in range(n))
    return numerator / denominator if denominator else 0.0
