"""Shared test fixtures for pytest.

Provides common price/volume histories used across multiple test files.
"""

import os
from datetime import datetime, timezone

import pytest

from core.anomaly import config as anomaly_config
from core.types import Observation

EVAL_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_history(prices, volumes=None) -> list[Observation]:
    """Build observations one minute apart; volumes default to 1000."""
    if volumes is None:
        volumes = [1000.0] * len(prices)
    base_ms = int(EVAL_TIME.timestamp() * 1000)
    count = len(prices)
    return [
        Observation(price=float(p), volume=float(v), timestamp=base_ms - (count - i) * 60_000)
        for i, (p, v) in enumerate(zip(prices, volumes))
    ]


def clustered_prices(count: int = 20, center: float = 100.0) -> list[float]:
    """Prices alternating tightly around center (center - 1 .. center + 1)."""
    offsets = [-1.0, -0.5, 0.0, 0.5, 1.0]
    return [center + offsets[i % len(offsets)] for i in range(count)]


def clustered_volumes(count: int = 20, center: float = 1000.0) -> list[float]:
    offsets = [-50.0, -25.0, 0.0, 25.0, 50.0]
    return [center + offsets[i % len(offsets)] for i in range(count)]


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep ANOMALY_* variables from the host out of the cached config."""
    for key in list(os.environ):
        if key.startswith("ANOMALY_"):
            monkeypatch.delenv(key, raising=False)
    anomaly_config.reset_config()
    yield
    anomaly_config.reset_config()


@pytest.fixture
def calm_history() -> list[Observation]:
    """Twenty observations clustered around price 100 and volume 1000."""
    return make_history(clustered_prices(), clustered_volumes())
