"""Statistical anomaly detection for price/volume streams."""

from core.anomaly.config import AnomalyConfig, get_config
from core.anomaly.detectors import (
    classify_severity,
    detect_lof,
    detect_price_deviation,
    detect_volume_spike,
    detect_zscore,
)
from core.anomaly.errors import AnomalyError, EmptyInputError, MalformedInputError
from core.anomaly.evaluator import evaluate, evaluate_many, rank_findings, summarize
from core.anomaly.history import AnomalyFeed, HistoryStore, HistoryWindow

__all__ = [
    "AnomalyConfig",
    "AnomalyError",
    "AnomalyFeed",
    "EmptyInputError",
    "HistoryStore",
    "HistoryWindow",
    "MalformedInputError",
    "classify_severity",
    "detect_lof",
    "detect_price_deviation",
    "detect_volume_spike",
    "detect_zscore",
    "evaluate",
    "evaluate_many",
    "get_config",
    "rank_findings",
    "summarize",
]
