"""Statistics primitives shared by the detectors."""

from __future__ import annotations

import math
from typing import Sequence

from core.anomaly.errors import EmptyInputError


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean.

    Raises:
        EmptyInputError: If values is empty
    """
    if not values:
        raise EmptyInputError("mean() requires at least one value")
    return sum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (divides by N, not N - 1)."""
    avg = mean(values)
    return math.sqrt(mean([(v - avg) ** 2 for v in values]))


def min_max_normalize(value: float, lo: float, hi: float) -> float:
    """Scale value into [0, 1] relative to lo..hi.

    A constant range (hi == lo) uses a denominator of 1.
    """
    span = hi - lo
    return (value - lo) / (span or 1.0)


def euclidean_distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2)


def is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
