"""Anomaly engine configuration.

Defaults match the detector thresholds used in production. Every field can be
overridden from the environment:

- ANOMALY_ZSCORE_THRESHOLD (default: 2.5)
- ANOMALY_VOLUME_THRESHOLD (default: 3.0, ratio to average volume)
- ANOMALY_MA_WINDOW (default: 20)
- ANOMALY_DEVIATION_THRESHOLD (default: 5.0, percent)
- ANOMALY_LOF_THRESHOLD (default: 1.5)
- ANOMALY_LOF_K (default: 5)
- ANOMALY_LOF_MIN_HISTORY (default: 20)
- ANOMALY_MIN_HISTORY (default: 10, z-score and volume detectors)
- ANOMALY_HISTORY_SIZE (default: 100)
- ANOMALY_FEED_SIZE (default: 50)
- ANOMALY_ALERT_MIN_SEVERITY (default: high)
- ANOMALY_ALERTS_ENABLED (default: false)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Callable, Mapping, Optional

from core.types import SEVERITY_RANK

_ENV_PREFIX = "ANOMALY_"


@dataclass(frozen=True)
class AnomalyConfig:
    zscore_threshold: float = 2.5
    volume_threshold: float = 3.0
    ma_window: int = 20
    deviation_threshold: float = 5.0
    lof_threshold: float = 1.5
    lof_k: int = 5
    lof_min_history: int = 20
    min_history: int = 10
    history_size: int = 100
    feed_size: int = 50
    alert_min_severity: str = "high"
    alerts_enabled: bool = False

    def __post_init__(self) -> None:
        for name in ("ma_window", "lof_k", "lof_min_history", "min_history", "history_size", "feed_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        for name in ("zscore_threshold", "volume_threshold", "deviation_threshold", "lof_threshold"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.lof_min_history < 2:
            raise ValueError(f"lof_min_history must be >= 2, got {self.lof_min_history}")
        # A window longer than the retained history could never fill.
        for name in ("ma_window", "lof_min_history", "min_history"):
            if getattr(self, name) > self.history_size:
                raise ValueError(
                    f"{name} ({getattr(self, name)}) must be <= history_size ({self.history_size})"
                )
        if self.alert_min_severity not in SEVERITY_RANK:
            raise ValueError(
                f"alert_min_severity must be one of {sorted(SEVERITY_RANK)}, got {self.alert_min_severity!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AnomalyConfig":
        """Build a config from ANOMALY_* environment variables.

        Raises:
            ValueError: If a variable cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in fields(cls):
            key = _ENV_PREFIX + f.name.upper()
            raw = env.get(key)
            if raw is None or not raw.strip():
                continue
            parser: Callable[[str], object] = _PARSERS.get(f.type, str)
            try:
                overrides[f.name] = parser(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{key}={raw!r} is invalid: {exc}") from exc
        return cls(**overrides)


def _parse_bool(raw: str) -> bool:
    value = raw.lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValueError(f"expected true/false, got {raw!r}")


# Field annotations are strings under postponed evaluation.
_PARSERS: dict[str, Callable[[str], object]] = {
    "float": float,
    "int": int,
    "str": lambda raw: raw.lower(),
    "bool": _parse_bool,
}


_config: AnomalyConfig | None = None


def get_config() -> AnomalyConfig:
    """Get or create the process-wide config loaded from the environment."""
    global _config
    if _config is None:
        _config = AnomalyConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None
