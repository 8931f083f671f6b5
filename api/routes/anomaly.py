"""API endpoints for price/volume anomaly detection."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from core.anomaly.alerts import get_alert_manager
from core.anomaly.config import get_config
from core.anomaly.errors import MalformedInputError
from core.anomaly.evaluator import evaluate, evaluate_many
from core.anomaly.history import AnomalyFeed
from core.types import CurrentSample, EvaluationRequest, EvaluationResult, Observation

router = APIRouter(prefix="/anomaly", tags=["anomaly"])

API_VERSION = "1.0.0"

_feed: AnomalyFeed | None = None


def _get_feed() -> AnomalyFeed:
    global _feed
    if _feed is None:
        _feed = AnomalyFeed(maxlen=get_config().feed_size)
    return _feed


class CurrentData(BaseModel):
    price: float = Field(..., allow_inf_nan=False)
    volume: float = Field(..., ge=0, allow_inf_nan=False)


class HistoryPoint(BaseModel):
    price: float = Field(..., allow_inf_nan=False)
    volume: float = Field(..., ge=0, allow_inf_nan=False)
    # Epoch milliseconds or ISO-8601
    timestamp: Optional[Union[datetime, float]] = None


class AnomalyRequest(BaseModel):
    instrument: str = Field(..., min_length=1)
    current: CurrentData
    history: list[HistoryPoint] = Field(default_factory=list)

    def to_evaluation_request(self) -> EvaluationRequest:
        return EvaluationRequest(
            instrument=self.instrument,
            current=CurrentSample(price=self.current.price, volume=self.current.volume),
            history=tuple(
                Observation(price=p.price, volume=p.volume, timestamp=p.timestamp) for p in self.history
            ),
        )


class BatchAnomalyRequest(BaseModel):
    requests: list[AnomalyRequest] = Field(..., min_length=1)


def _check_history_size(request: AnomalyRequest) -> None:
    limit = get_config().history_size
    if len(request.history) > limit:
        raise HTTPException(
            status_code=422,
            detail=f"history for {request.instrument} has {len(request.history)} entries, maximum is {limit}",
        )


def _publish(result: EvaluationResult) -> None:
    _get_feed().publish(result.findings)
    get_alert_manager().alert(result)


@router.post("")
async def detect_anomalies(request: AnomalyRequest) -> dict[str, Any]:
    """Evaluate one instrument's current sample against its history."""
    _check_history_size(request)
    req = request.to_evaluation_request()
    try:
        result = evaluate(req.instrument, req.current, req.history)
    except MalformedInputError as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field, "message": str(exc)}) from exc

    _publish(result)
    return result.to_dict()


@router.post("/batch")
async def detect_anomalies_batch(batch: BatchAnomalyRequest) -> dict[str, Any]:
    """Evaluate several instruments in one call."""
    for request in batch.requests:
        _check_history_size(request)
    try:
        results = evaluate_many([r.to_evaluation_request() for r in batch.requests])
    except MalformedInputError as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field, "message": str(exc)}) from exc

    for result in results:
        _publish(result)
    return {"results": [r.to_dict() for r in results], "count": len(results)}


@router.get("/recent")
async def recent_anomalies(
    limit: int = Query(50, ge=1, le=500, description="Maximum findings to return"),
) -> dict[str, Any]:
    """Most recent findings across instruments, newest first."""
    findings = _get_feed().recent(limit)
    return {"findings": [f.to_dict() for f in findings], "count": len(findings)}


@router.get("")
async def list_algorithms() -> dict[str, Any]:
    """Detector catalog with the thresholds currently in effect."""
    cfg = get_config()
    return {
        "status": "online",
        "algorithms": [
            {
                "kind": "zscore",
                "name": "Z-Score",
                "description": "Statistical deviation from mean",
                "threshold": f"{cfg.zscore_threshold:g}σ",
            },
            {
                "kind": "volume_spike",
                "name": "Volume Spike",
                "description": "Trading volume anomaly",
                "threshold": f"{cfg.volume_threshold:g}x average",
            },
            {
                "kind": "price_deviation",
                "name": "Price Deviation",
                "description": f"Deviation from {cfg.ma_window}-period moving average",
                "threshold": f"{cfg.deviation_threshold:g}%",
            },
            {
                "kind": "lof",
                "name": "Local Outlier Factor",
                "description": "Multi-dimensional density-based detection",
                "threshold": f"{cfg.lof_threshold:g}",
            },
        ],
        "version": API_VERSION,
    }
