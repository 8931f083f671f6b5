"""Tests for the anomaly evaluation pipeline."""

from __future__ import annotations

from collections import deque

import pytest

from conftest import EVAL_TIME, clustered_prices, clustered_volumes, make_history
from core.anomaly.config import AnomalyConfig
from core.anomaly.errors import MalformedInputError
from core.anomaly.evaluator import evaluate, evaluate_many, rank_findings, summarize
from core.types import SEVERITY_RANK, CurrentSample, EvaluationRequest, Observation


def test_price_spike_scenario(calm_history):
    result = evaluate("BTCUSD", CurrentSample(price=130.0, volume=1000.0), calm_history, now=EVAL_TIME)

    zscore = [f for f in result.findings if f.kind == "zscore"]
    assert len(zscore) == 1
    assert zscore[0].details["direction"] == "above"
    assert zscore[0].severity in ("high", "critical")
    assert result.summary.has_findings is True
    assert result.summary.highest_severity == "critical"


def test_equal_severity_keeps_detector_order(calm_history):
    result = evaluate("BTCUSD", CurrentSample(price=130.0, volume=1000.0), calm_history, now=EVAL_TIME)

    assert [f.kind for f in result.findings] == ["zscore", "price_deviation", "lof"]
    assert {f.severity for f in result.findings} == {"critical"}


def test_volume_spike_scenario():
    history = make_history([100.0] * 20, clustered_volumes(20))

    result = evaluate("ETHUSD", CurrentSample(price=100.0, volume=12000.0), history, now=EVAL_TIME)

    spikes = [f for f in result.findings if f.kind == "volume_spike"]
    assert len(spikes) == 1
    assert spikes[0].score == pytest.approx(12.0)
    assert spikes[0].severity == "critical"


def test_flat_market_has_no_findings():
    history = make_history([50.0] * 20)

    result = evaluate("SOLUSD", CurrentSample(price=50.0, volume=1000.0), history, now=EVAL_TIME)

    assert result.findings == ()
    assert result.anomaly_count == 0
    assert result.summary.has_findings is False
    assert result.summary.highest_severity == "none"
    assert result.summary.distinct_kinds == ()
    assert result.detector_errors == ()


def test_calm_market_has_no_findings(calm_history):
    result = evaluate("BTCUSD", CurrentSample(price=100.0, volume=1000.0), calm_history)

    assert result.summary.has_findings is False


def test_findings_sorted_by_severity(calm_history):
    # z ~= 2.83 (medium), volume 6x (high), far outside the price/volume cloud (critical)
    result = evaluate("BTCUSD", CurrentSample(price=102.0, volume=6000.0), calm_history, now=EVAL_TIME)

    assert [(f.kind, f.severity) for f in result.findings] == [
        ("lof", "critical"),
        ("volume_spike", "high"),
        ("zscore", "medium"),
    ]
    ranks = [SEVERITY_RANK[f.severity] for f in result.findings]
    assert ranks == sorted(ranks)
    assert result.summary.distinct_kinds == ("lof", "volume_spike", "zscore")


def test_evaluate_is_deterministic(calm_history):
    current = CurrentSample(price=102.0, volume=6000.0)

    first = evaluate("BTCUSD", current, calm_history, now=EVAL_TIME)
    second = evaluate("BTCUSD", current, calm_history, now=EVAL_TIME)

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_empty_history_yields_no_findings():
    result = evaluate("BTCUSD", CurrentSample(price=100.0, volume=1000.0), [])

    assert result.findings == ()
    assert result.summary.highest_severity == "none"


@pytest.mark.parametrize(
    "length,expected",
    [
        (9, set()),
        (10, {"zscore"}),
        (19, {"zscore"}),
        (20, {"zscore", "price_deviation", "lof"}),
    ],
)
def test_minimum_history_per_detector(length, expected):
    history = make_history(clustered_prices(length), clustered_volumes(length))

    result = evaluate("BTCUSD", CurrentSample(price=130.0, volume=1000.0), history)

    assert {f.kind for f in result.findings} == expected


def test_malformed_current_price_is_isolated_per_detector():
    history = make_history([100.0] * 20, clustered_volumes(20))

    result = evaluate("BTCUSD", CurrentSample(price=None, volume=12000.0), history)

    assert [f.kind for f in result.findings] == ["volume_spike"]
    assert [(e.kind, e.field) for e in result.detector_errors] == [
        ("zscore", "current.price"),
        ("price_deviation", "current.price"),
        ("lof", "current.price"),
    ]


def test_malformed_history_entry_fails_fast(calm_history):
    history = list(calm_history)
    history[3] = Observation(price=None, volume=1000.0)

    with pytest.raises(MalformedInputError) as exc_info:
        evaluate("BTCUSD", CurrentSample(price=100.0, volume=1000.0), history)

    assert exc_info.value.field == "history[3].price"


def test_missing_instrument_rejected(calm_history):
    with pytest.raises(MalformedInputError) as exc_info:
        evaluate("  ", CurrentSample(price=100.0, volume=1000.0), calm_history)

    assert exc_info.value.field == "instrument"


def test_history_trimmed_to_configured_size():
    # Old prices far away would make 100 look anomalous if they were used
    history = make_history([1000.0] * 10 + clustered_prices(20), [1000.0] * 10 + clustered_volumes(20))
    config = AnomalyConfig(history_size=20)

    result = evaluate("BTCUSD", CurrentSample(price=100.0, volume=1000.0), history, config=config)

    assert result.findings == ()


def test_thresholds_come_from_config(calm_history):
    config = AnomalyConfig(zscore_threshold=5.0, deviation_threshold=50.0, lof_threshold=1000.0)

    result = evaluate("BTCUSD", CurrentSample(price=103.0, volume=1000.0), calm_history, config=config)

    # z ~= 4.24 is below the raised threshold
    assert result.findings == ()


def test_to_dict_shape(calm_history):
    result = evaluate("BTCUSD", CurrentSample(price=130.0, volume=1000.0), calm_history, now=EVAL_TIME)

    payload = result.to_dict()

    assert payload["instrument"] == "BTCUSD"
    assert payload["timestamp"] == "2024-01-01T12:00:00+00:00"
    assert payload["anomaly_count"] == 3
    assert payload["summary"] == {
        "has_findings": True,
        "highest_severity": "critical",
        "distinct_kinds": ["zscore", "price_deviation", "lof"],
    }
    assert payload["findings"][0]["kind"] == "zscore"
    assert payload["detector_errors"] == []


def test_rank_and_summarize_empty():
    assert rank_findings([]) == ()
    summary = summarize(())
    assert summary.has_findings is False
    assert summary.highest_severity == "none"


def test_evaluate_many_preserves_order(calm_history):
    flat = make_history([50.0] * 20)
    requests = [
        EvaluationRequest("BTCUSD", CurrentSample(price=130.0, volume=1000.0), calm_history, now=EVAL_TIME),
        EvaluationRequest("SOLUSD", CurrentSample(price=50.0, volume=1000.0), flat, now=EVAL_TIME),
        EvaluationRequest("ETHUSD", CurrentSample(price=100.0, volume=1000.0), calm_history, now=EVAL_TIME),
    ]

    results = evaluate_many(requests, max_workers=2)

    assert [r.instrument for r in results] == ["BTCUSD", "SOLUSD", "ETHUSD"]
    assert results[0].summary.has_findings is True
    assert results[1].summary.has_findings is False
    assert results[0] == evaluate("BTCUSD", requests[0].current, calm_history, now=EVAL_TIME)


def test_evaluate_many_propagates_malformed_history():
    bad = [Observation(price=100.0, volume=None)] * 20
    requests = [
        EvaluationRequest("BTCUSD", CurrentSample(price=100.0, volume=1000.0), make_history([100.0] * 20)),
        EvaluationRequest("ETHUSD", CurrentSample(price=100.0, volume=1000.0), bad),
    ]

    with pytest.raises(MalformedInputError):
        evaluate_many(requests)


def test_current_without_fields_reported_per_detector(calm_history):
    result = evaluate("BTCUSD", object(), calm_history)

    assert result.findings == ()
    assert [(e.kind, e.field) for e in result.detector_errors] == [
        ("zscore", "current.price"),
        ("volume_spike", "current.volume"),
        ("price_deviation", "current.price"),
        ("lof", "current.price"),
    ]


def test_history_accepts_deque():
    history = deque(make_history([1000.0] * 10 + clustered_prices(20), [1000.0] * 10 + clustered_volumes(20)))

    result = evaluate(
        "BTCUSD",
        CurrentSample(price=100.0, volume=1000.0),
        history,
        config=AnomalyConfig(history_size=20),
    )

    assert result.findings == ()


def test_evaluate_many_skip_malformed(calm_history):
    bad = [Observation(price=100.0, volume=None)] * 20
    requests = [
        EvaluationRequest("BTCUSD", CurrentSample(price=130.0, volume=1000.0), calm_history, now=EVAL_TIME),
        EvaluationRequest("ETHUSD", CurrentSample(price=100.0, volume=1000.0), bad),
        EvaluationRequest(" ", CurrentSample(price=100.0, volume=1000.0), calm_history),
    ]

    results = evaluate_many(requests, skip_malformed=True)

    assert [r.instrument for r in results] == ["BTCUSD"]
    assert results[0].summary.highest_severity == "critical"
