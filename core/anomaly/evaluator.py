"""Anomaly evaluation pipeline.

Runs every detector against one (current sample, history) pair and returns a
severity-ranked EvaluationResult. Evaluation is stateless: the caller owns the
history window and passes an immutable snapshot per call.

Usage:
    from core.anomaly.evaluator import evaluate
    from core.types import CurrentSample

    result = evaluate("BTCUSD", CurrentSample(price=130.0, volume=1000.0), history)
    if result.summary.has_findings:
        ...
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from core.anomaly.config import AnomalyConfig, get_config
from core.anomaly.detectors import (
    detect_lof,
    detect_price_deviation,
    detect_volume_spike,
    detect_zscore,
)
from core.anomaly.errors import MalformedInputError
from core.anomaly.stats import is_finite_number
from core.types import (
    NO_SEVERITY,
    SEVERITY_RANK,
    AnomalyKind,
    CurrentSample,
    DetectorError,
    EvaluationRequest,
    EvaluationResult,
    EvaluationSummary,
    Finding,
    Observation,
)

logger = logging.getLogger(__name__)


def _validate_instrument(instrument: str) -> None:
    if not isinstance(instrument, str) or not instrument.strip():
        raise MalformedInputError("instrument", "instrument must be a non-empty string")


def _validate_history(history: Sequence[Observation]) -> None:
    """Reject history entries with a missing or non-finite price/volume.

    Bad historical values are never coerced to 0 or NaN, since they would
    silently skew every aggregate.
    """
    for i, obs in enumerate(history):
        for name in ("price", "volume"):
            if not is_finite_number(getattr(obs, name, None)):
                raise MalformedInputError(f"history[{i}].{name}")


def summarize(findings: Sequence[Finding]) -> EvaluationSummary:
    kinds: list[AnomalyKind] = []
    for finding in findings:
        if finding.kind not in kinds:
            kinds.append(finding.kind)
    return EvaluationSummary(
        has_findings=bool(findings),
        highest_severity=findings[0].severity if findings else NO_SEVERITY,
        distinct_kinds=tuple(kinds),
    )


def rank_findings(findings: Sequence[Finding]) -> tuple[Finding, ...]:
    """Order findings by severity, most severe first.

    sorted() is stable, so ties keep detector order.
    """
    return tuple(sorted(findings, key=lambda f: SEVERITY_RANK[f.severity]))


def evaluate(
    instrument: str,
    current: CurrentSample,
    history: Sequence[Observation],
    *,
    config: Optional[AnomalyConfig] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    """Evaluate all detectors for one instrument.

    Args:
        instrument: Instrument identifier (e.g. "BTCUSD")
        current: Latest price/volume sample
        history: Prior observations, oldest first
        config: Detector thresholds (default: environment config)
        now: Evaluation time stamped on the result (default: current UTC time)

    Returns:
        EvaluationResult with findings ranked by severity. A detector that
        rejects the current sample is reported in `detector_errors` and does
        not stop the others.

    Raises:
        MalformedInputError: If the instrument is empty or any history entry
            has a missing or non-finite price/volume. A missing or non-finite
            current price/volume only disables the detectors that need it.
    """
    cfg = config or get_config()
    timestamp = now or datetime.now(timezone.utc)

    _validate_instrument(instrument)
    history = tuple(history)
    _validate_history(history)

    if len(history) > cfg.history_size:
        logger.debug(f"{instrument}: history has {len(history)} entries, using newest {cfg.history_size}")
        history = history[-cfg.history_size:]

    # Missing fields reach the detectors as None and are reported per detector.
    current_price = getattr(current, "price", None)
    current_volume = getattr(current, "volume", None)

    prices = [float(obs.price) for obs in history]
    volumes = [float(obs.volume) for obs in history]
    pairs = list(zip(prices, volumes))

    detectors: list[tuple[AnomalyKind, Callable[[], Finding | None]]] = [
        (
            "zscore",
            lambda: detect_zscore(
                current_price,
                prices,
                instrument,
                threshold=cfg.zscore_threshold,
                min_history=cfg.min_history,
                now=timestamp,
            ),
        ),
        (
            "volume_spike",
            lambda: detect_volume_spike(
                current_volume,
                volumes,
                instrument,
                threshold=cfg.volume_threshold,
                min_history=cfg.min_history,
                now=timestamp,
            ),
        ),
        (
            "price_deviation",
            lambda: detect_price_deviation(
                current_price,
                prices,
                instrument,
                ma_window=cfg.ma_window,
                threshold=cfg.deviation_threshold,
                now=timestamp,
            ),
        ),
        (
            "lof",
            lambda: detect_lof(
                current_price,
                current_volume,
                pairs,
                instrument,
                threshold=cfg.lof_threshold,
                k=cfg.lof_k,
                min_history=cfg.lof_min_history,
                now=timestamp,
            ),
        ),
    ]

    findings: list[Finding] = []
    errors: list[DetectorError] = []
    for kind, run in detectors:
        try:
            finding = run()
        except MalformedInputError as exc:
            logger.warning(f"{instrument}: {kind} detector rejected input: {exc}")
            errors.append(DetectorError(kind=kind, field=exc.field, message=str(exc)))
            continue
        if finding is not None:
            findings.append(finding)

    ranked = rank_findings(findings)
    summary = summarize(ranked)
    if summary.has_findings:
        logger.info(
            f"{instrument}: {len(ranked)} anomalies, highest={summary.highest_severity}, "
            f"kinds={','.join(summary.distinct_kinds)}"
        )
    else:
        logger.debug(f"{instrument}: monitoring, no anomalies")

    return EvaluationResult(
        instrument=instrument,
        timestamp=timestamp,
        findings=ranked,
        summary=summary,
        detector_errors=tuple(errors),
    )


def evaluate_request(request: EvaluationRequest, *, config: Optional[AnomalyConfig] = None) -> EvaluationResult:
    return evaluate(request.instrument, request.current, request.history, config=config, now=request.now)


def _evaluate_or_skip(request: EvaluationRequest, config: AnomalyConfig) -> EvaluationResult | None:
    try:
        return evaluate_request(request, config=config)
    except MalformedInputError as exc:
        logger.warning(f"{request.instrument!r}: skipped malformed request: {exc}")
        return None


def evaluate_many(
    requests: Sequence[EvaluationRequest],
    *,
    config: Optional[AnomalyConfig] = None,
    max_workers: Optional[int] = None,
    skip_malformed: bool = False,
) -> list[EvaluationResult]:
    """Evaluate several instruments independently.

    Instruments share no state, so they fan out over a thread pool. Results
    come back in request order.

    Args:
        requests: One request per instrument
        config: Detector thresholds shared by all requests
        max_workers: Thread pool size (default: ThreadPoolExecutor default)
        skip_malformed: Log and drop requests that raise MalformedInputError
            instead of raising after all submitted evaluations finish

    Returns:
        List of EvaluationResult, one per evaluated request
    """
    cfg = config or get_config()
    run: Callable[[EvaluationRequest], EvaluationResult | None]
    if skip_malformed:
        run = lambda r: _evaluate_or_skip(r, cfg)  # noqa: E731
    else:
        run = lambda r: evaluate_request(r, config=cfg)  # noqa: E731

    if len(requests) <= 1:
        results = [run(r) for r in requests]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(run, r) for r in requests]
            results = [future.result() for future in futures]
    return [r for r in results if r is not None]
