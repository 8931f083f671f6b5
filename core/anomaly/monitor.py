"""Per-cycle anomaly monitoring over live price/volume samples.

The monitor owns the rolling history for each instrument. Every cycle it
evaluates the latest sample against the history recorded so far, publishes
findings and alerts, then appends the sample to the history. Scheduling the
cycles (timer, websocket callback) is left to the caller.

Usage:
    monitor = AnomalyMonitor()
    results = monitor.run_cycle({"BTCUSD": CurrentSample(price=42000.0, volume=12.5)})
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from core.anomaly.alerts import AnomalyAlertManager, get_alert_manager
from core.anomaly.config import AnomalyConfig, get_config
from core.anomaly.evaluator import evaluate_many
from core.anomaly.history import AnomalyFeed, HistoryStore
from core.anomaly.stats import is_finite_number
from core.types import CurrentSample, EvaluationRequest, EvaluationResult, Observation

logger = logging.getLogger(__name__)


class AnomalyMonitor:
    def __init__(
        self,
        *,
        config: Optional[AnomalyConfig] = None,
        store: Optional[HistoryStore] = None,
        feed: Optional[AnomalyFeed] = None,
        alert_manager: Optional[AnomalyAlertManager] = None,
        min_history: Optional[int] = None,
    ) -> None:
        """Initialize AnomalyMonitor.

        Args:
            config: Detector thresholds (default: environment config)
            store: History store (default: new store sized from config)
            feed: Recent findings feed (default: new feed sized from config)
            alert_manager: Alert sink (default: global alert manager)
            min_history: Skip instruments with fewer recorded observations
                (default: config.lof_min_history)
        """
        self.config = config or get_config()
        self.store = store or HistoryStore(maxlen=self.config.history_size)
        self.feed = feed or AnomalyFeed(maxlen=self.config.feed_size)
        self.alert_manager = alert_manager or get_alert_manager()
        self.min_history = self.config.lof_min_history if min_history is None else min_history

    def record(self, instrument: str, sample: CurrentSample, timestamp: Optional[datetime] = None) -> None:
        self.store.record(
            instrument,
            Observation(price=sample.price, volume=sample.volume, timestamp=timestamp),
        )

    def run_cycle(
        self,
        samples: Mapping[str, CurrentSample],
        *,
        now: Optional[datetime] = None,
    ) -> dict[str, EvaluationResult]:
        """Evaluate and record the latest sample for each instrument.

        Instruments still warming up (fewer than `min_history` observations)
        are only recorded. Blank instrument names are skipped, and an
        instrument whose history fails validation is logged and left out of
        the results without stopping the rest of the cycle.

        Returns:
            Mapping of instrument to EvaluationResult for evaluated instruments
        """
        now = now or datetime.now(timezone.utc)

        valid: dict[str, CurrentSample] = {}
        for instrument, sample in samples.items():
            if not isinstance(instrument, str) or not instrument.strip():
                logger.warning(f"Skipping sample with blank instrument name: {instrument!r}")
                continue
            valid[instrument] = sample

        requests = []
        for instrument, sample in valid.items():
            history = self.store.snapshot(instrument)
            if len(history) < self.min_history:
                logger.debug(f"{instrument}: warming up ({len(history)}/{self.min_history})")
                continue
            requests.append(EvaluationRequest(instrument=instrument, current=sample, history=history, now=now))

        results = evaluate_many(requests, config=self.config, skip_malformed=True)
        for result in results:
            self.feed.publish(result.findings)
            self.alert_manager.alert(result)

        for instrument, sample in valid.items():
            if not (is_finite_number(sample.price) and is_finite_number(sample.volume)):
                logger.warning(f"{instrument}: not recording malformed sample {sample}")
                continue
            self.record(instrument, sample, timestamp=now)

        return {result.instrument: result for result in results}
