from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, Optional, Sequence, Union

AnomalyKind = Literal["zscore", "volume_spike", "price_deviation", "lof"]
Severity = Literal["critical", "high", "medium", "low"]
Direction = Literal["above", "below"]

# Lower rank sorts first.
SEVERITY_RANK: Mapping[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}
NO_SEVERITY = "none"

DETECTOR_ORDER: tuple[AnomalyKind, ...] = ("zscore", "volume_spike", "price_deviation", "lof")

Timestamp = Union[datetime, float, int, None]


@dataclass(frozen=True)
class Observation:
    price: float
    volume: float
    timestamp: Timestamp = None


@dataclass(frozen=True)
class CurrentSample:
    """Latest price/volume for an instrument, not yet part of its history."""

    price: float
    volume: float


@dataclass(frozen=True)
class Finding:
    kind: AnomalyKind
    severity: Severity
    score: float
    threshold: float
    message: str
    instrument: str
    timestamp: datetime
    details: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "score": self.score,
            "threshold": self.threshold,
            "message": self.message,
            "instrument": self.instrument,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class DetectorError:
    kind: AnomalyKind
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class EvaluationSummary:
    has_findings: bool
    highest_severity: str  # Severity or NO_SEVERITY
    distinct_kinds: tuple[AnomalyKind, ...]


@dataclass(frozen=True)
class EvaluationResult:
    instrument: str
    timestamp: datetime
    findings: tuple[Finding, ...]
    summary: EvaluationSummary
    detector_errors: tuple[DetectorError, ...] = ()

    @property
    def anomaly_count(self) -> int:
        return len(self.findings)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable response body."""
        return {
            "instrument": self.instrument,
            "timestamp": self.timestamp.isoformat(),
            "anomaly_count": self.anomaly_count,
            "findings": [f.to_dict() for f in self.findings],
            "summary": {
                "has_findings": self.summary.has_findings,
                "highest_severity": self.summary.highest_severity,
                "distinct_kinds": list(self.summary.distinct_kinds),
            },
            "detector_errors": [e.to_dict() for e in self.detector_errors],
        }


@dataclass(frozen=True)
class EvaluationRequest:
    instrument: str
    current: CurrentSample
    history: Sequence[Observation]
    now: Optional[datetime] = None
