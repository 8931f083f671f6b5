"""Statistical anomaly detectors.

Detectors:
- Z-score of the current price against the history
- Volume spike (current volume / average volume)
- Price deviation from a simple moving average
- Local-outlier-factor approximation over normalised price/volume

Each detector is a pure function returning a Finding, or None when the history
is too short, the series is degenerate, or nothing crosses the threshold.

Usage:
    from core.anomaly.detectors import detect_zscore

    finding = detect_zscore(130.0, prices, "BTCUSD")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from core.anomaly.errors import MalformedInputError
from core.anomaly.stats import (
    euclidean_distance,
    is_finite_number,
    mean,
    min_max_normalize,
    standard_deviation,
)
from core.types import Direction, Finding, Severity

logger = logging.getLogger(__name__)


def classify_severity(value: float, *, critical: float, high: float, medium: float) -> Severity:
    """Map a detector score onto a severity bucket.

    Buckets are checked from the highest cut-off down; anything not above
    `medium` is "low".
    """
    if value > critical:
        return "critical"
    if value > high:
        return "high"
    if value > medium:
        return "medium"
    return "low"


def _require_finite(value: object, field: str) -> float:
    if not is_finite_number(value):
        raise MalformedInputError(field)
    return float(value)


def _direction(delta: float) -> Direction:
    return "above" if delta > 0 else "below"


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def detect_zscore(
    current_price: float,
    historical_prices: Sequence[float],
    instrument: str,
    *,
    threshold: float = 2.5,
    min_history: int = 10,
    now: Optional[datetime] = None,
) -> Finding | None:
    """Detect a price far from the historical mean in standard deviations.

    Args:
        current_price: Latest price
        historical_prices: Prior prices, oldest first
        instrument: Instrument identifier
        threshold: Minimum |z| to report (default: 2.5)
        min_history: Minimum number of historical prices (default: 10)
        now: Evaluation time (default: current UTC time)

    Returns:
        Finding if |z| exceeds the threshold, None otherwise

    Raises:
        MalformedInputError: If current_price is not a finite number
    """
    price = _require_finite(current_price, "current.price")
    if len(historical_prices) < min_history:
        return None

    avg = mean(historical_prices)
    std = standard_deviation(historical_prices)
    if std == 0:
        logger.debug(f"{instrument}: zero price variance, skipping z-score")
        return None

    z = (price - avg) / std
    abs_z = abs(z)
    if abs_z <= threshold:
        return None

    direction = _direction(z)
    move = "spike" if direction == "above" else "drop"
    return Finding(
        kind="zscore",
        severity=classify_severity(abs_z, critical=4.0, high=3.0, medium=2.5),
        score=abs_z,
        threshold=threshold,
        message=f"Price {abs_z:.2f}σ {direction} mean - Unusual {move} detected",
        instrument=instrument,
        timestamp=_now(now),
        details={
            "current_price": price,
            "mean": avg,
            "standard_deviation": std,
            "z_score": z,
            "direction": direction,
            "percent_deviation": (price - avg) / avg * 100 if avg else None,
        },
    )


def detect_volume_spike(
    current_volume: float,
    historical_volumes: Sequence[float],
    instrument: str,
    *,
    threshold: float = 3.0,
    min_history: int = 10,
    now: Optional[datetime] = None,
) -> Finding | None:
    """Detect traded volume far above the historical average.

    A history whose average volume is zero (or negative) carries no baseline,
    so the detector abstains rather than reporting an infinite ratio.

    Args:
        current_volume: Latest volume
        historical_volumes: Prior volumes, oldest first
        instrument: Instrument identifier
        threshold: Minimum volume ratio to report (default: 3.0)
        min_history: Minimum number of historical volumes (default: 10)
        now: Evaluation time (default: current UTC time)

    Returns:
        Finding if the ratio exceeds the threshold, None otherwise

    Raises:
        MalformedInputError: If current_volume is not a finite number
    """
    volume = _require_finite(current_volume, "current.volume")
    if len(historical_volumes) < min_history:
        return None

    avg_volume = mean(historical_volumes)
    if avg_volume <= 0:
        logger.debug(f"{instrument}: average volume is {avg_volume}, skipping volume spike")
        return None

    ratio = volume / avg_volume
    if ratio <= threshold:
        return None

    return Finding(
        kind="volume_spike",
        severity=classify_severity(ratio, critical=10.0, high=5.0, medium=3.0),
        score=ratio,
        threshold=threshold,
        message=f"Volume {ratio:.1f}x average - Major trading activity detected",
        instrument=instrument,
        timestamp=_now(now),
        details={
            "current_volume": volume,
            "average_volume": avg_volume,
            "volume_ratio": ratio,
            "percent_increase": (ratio - 1) * 100,
        },
    )


def detect_price_deviation(
    current_price: float,
    prices: Sequence[float],
    instrument: str,
    *,
    ma_window: int = 20,
    threshold: float = 5.0,
    now: Optional[datetime] = None,
) -> Finding | None:
    """Detect a price deviating from its simple moving average by a percentage.

    Args:
        current_price: Latest price
        prices: Prior prices, oldest first; the last `ma_window` form the MA
        instrument: Instrument identifier
        ma_window: Moving average window (default: 20)
        threshold: Minimum absolute deviation in percent (default: 5.0)
        now: Evaluation time (default: current UTC time)

    Returns:
        Finding if the deviation exceeds the threshold, None otherwise

    Raises:
        MalformedInputError: If current_price is not a finite number
    """
    price = _require_finite(current_price, "current.price")
    if len(prices) < ma_window:
        return None

    moving_average = mean(prices[-ma_window:])
    if moving_average == 0:
        logger.debug(f"{instrument}: zero moving average, skipping price deviation")
        return None

    deviation = (price - moving_average) / moving_average * 100
    abs_deviation = abs(deviation)
    if abs_deviation <= threshold:
        return None

    direction = _direction(deviation)
    return Finding(
        kind="price_deviation",
        severity=classify_severity(abs_deviation, critical=15.0, high=10.0, medium=5.0),
        score=abs_deviation,
        threshold=threshold,
        message=f"Price {abs_deviation:.1f}% {direction} {ma_window}-period MA - Trend deviation alert",
        instrument=instrument,
        timestamp=_now(now),
        details={
            "current_price": price,
            "moving_average": moving_average,
            "deviation_pct": deviation,
            "direction": direction,
            "ma_window": ma_window,
        },
    )


def _mean_k_nearest(distances: list[float], k: int) -> float:
    distances.sort()
    return mean(distances[:k])


def detect_lof(
    current_price: float,
    current_volume: float,
    historical: Sequence[tuple[float, float]],
    instrument: str,
    *,
    threshold: float = 1.5,
    k: int = 5,
    min_history: int = 20,
    now: Optional[datetime] = None,
) -> Finding | None:
    """Detect a price/volume point isolated from its historical neighbourhood.

    This is a density-ratio heuristic, not a full LOF: prices and volumes are
    min-max normalised independently, then the current point's mean distance
    to its k nearest historical neighbours is divided by the average of the
    same quantity for every historical point (leave-one-out).

    Cost is O(n^2) in the history length; callers keep history bounded.

    Args:
        current_price: Latest price
        current_volume: Latest volume
        historical: Prior (price, volume) pairs, oldest first
        instrument: Instrument identifier
        threshold: Minimum LOF score to report (default: 1.5)
        k: Neighbour count, capped at len(historical) - 1 (default: 5)
        min_history: Minimum number of historical points (default: 20)
        now: Evaluation time (default: current UTC time)

    Returns:
        Finding if the LOF score exceeds the threshold, None otherwise

    Raises:
        MalformedInputError: If current_price or current_volume is not a finite number
    """
    price = _require_finite(current_price, "current.price")
    volume = _require_finite(current_volume, "current.volume")
    if len(historical) < max(min_history, 2):
        return None

    prices = [p for p, _ in historical]
    volumes = [v for _, v in historical]
    price_lo, price_hi = min(prices), max(prices)
    volume_lo, volume_hi = min(volumes), max(volumes)

    def normalize(p: float, v: float) -> tuple[float, float]:
        return (
            min_max_normalize(p, price_lo, price_hi),
            min_max_normalize(v, volume_lo, volume_hi),
        )

    current_point = normalize(price, volume)
    points = [normalize(p, v) for p, v in historical]
    neighbours = min(k, len(points) - 1)

    avg_k_distance = _mean_k_nearest([euclidean_distance(current_point, p) for p in points], neighbours)

    historical_k_distances = [
        _mean_k_nearest(
            [euclidean_distance(point, other) for j, other in enumerate(points) if j != i],
            neighbours,
        )
        for i, point in enumerate(points)
    ]
    avg_historical_k_distance = mean(historical_k_distances)

    lof_score = avg_k_distance / (avg_historical_k_distance or 1.0)
    if lof_score <= threshold:
        return None

    return Finding(
        kind="lof",
        severity=classify_severity(lof_score, critical=3.0, high=2.0, medium=1.5),
        score=lof_score,
        threshold=threshold,
        message=f"Local Outlier Factor {lof_score:.2f} - Multi-dimensional anomaly detected",
        instrument=instrument,
        timestamp=_now(now),
        details={
            "lof_score": lof_score,
            "avg_k_distance": avg_k_distance,
            "avg_historical_k_distance": avg_historical_k_distance,
            "k": neighbours,
            "interpretation": "Point is significantly different from local neighborhood",
        },
    )
