"""Alerts for anomaly evaluation results.

Configuration via environment variables:
- ANOMALY_ALERTS_ENABLED: Enable/disable alerts (default: false)
- ANOMALY_ALERT_MIN_SEVERITY: Lowest severity that alerts (default: high)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from core.anomaly.config import get_config
from core.types import NO_SEVERITY, SEVERITY_RANK, EvaluationResult

logger = logging.getLogger(__name__)


class AnomalyAlertManager:
    """Writes alerts for results whose highest severity meets the cut-off.

    Each alert is appended to logs/anomalies.log as one JSON line and logged
    at WARNING.
    """

    def __init__(
        self,
        *,
        enabled: bool | None = None,
        min_severity: str | None = None,
        log_dir: Path | None = None,
    ):
        """Initialize AnomalyAlertManager.

        Args:
            enabled: Enable alerts (reads config if None)
            min_severity: Lowest alerting severity (reads config if None)
            log_dir: Directory for alert logs (defaults to ./logs)
        """
        if enabled is None:
            enabled = get_config().alerts_enabled
        if min_severity is None:
            min_severity = get_config().alert_min_severity
        if min_severity not in SEVERITY_RANK:
            raise ValueError(f"unknown severity {min_severity!r}")

        self.enabled = enabled
        self.min_severity = min_severity
        self.log_dir = log_dir or Path(__file__).resolve().parents[2] / "logs"
        self.log_file = self.log_dir / "anomalies.log"

        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def should_alert(self, result: EvaluationResult) -> bool:
        severity = result.summary.highest_severity
        if severity == NO_SEVERITY:
            return False
        return SEVERITY_RANK[severity] <= SEVERITY_RANK[self.min_severity]

    def alert(self, result: EvaluationResult) -> bool:
        """Emit an alert for the result if enabled and severe enough.

        Returns:
            True if an alert was written, False otherwise
        """
        if not self.enabled or not self.should_alert(result):
            return False

        try:
            self._log_to_file(result)
        except OSError as exc:
            logger.warning(f"Failed to write anomaly alert for {result.instrument}: {exc}")
            return False

        logger.warning(
            f"Anomaly alert {result.instrument}: {result.summary.highest_severity} "
            f"({', '.join(result.summary.distinct_kinds)})"
        )
        return True

    def _log_to_file(self, result: EvaluationResult) -> None:
        log_entry = {
            "timestamp": result.timestamp.isoformat(),
            "instrument": result.instrument,
            "highest_severity": result.summary.highest_severity,
            "kinds": list(result.summary.distinct_kinds),
            "findings": [f"{f.kind}:{f.severity}:{f.score:.2f}" for f in result.findings],
        }
        with open(self.log_file, "a") as f:
            f.write(json.dumps(log_entry) + "\n")


_alert_manager: AnomalyAlertManager | None = None


def get_alert_manager() -> AnomalyAlertManager:
    """Get or create global AnomalyAlertManager instance."""
    global _alert_manager
    if _alert_manager is None:
        _alert_manager = AnomalyAlertManager()
    return _alert_manager
