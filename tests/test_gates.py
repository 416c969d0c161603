import pytest

from secgate.core.exceptions import GateFailedError
from secgate.core.gates import enforce_gate, evaluate_gate, failure_payload
from secgate.core.models import Threshold

THRESHOLDS = [
    Threshold(metric="critical", maximum=0),
    Threshold(metric="high", maximum=3),
    Threshold(metric="config", maximum=10, blocking=False),
]


def test_gate_passes_at_threshold():
    result = evaluate_gate("trivy", {"critical": 0, "high": 3, "config": 10}, THRESHOLDS)
    assert result.passed
    assert result.warnings == []


def test_gate_fails_one_above_threshold():
    result = evaluate_gate("trivy", {"critical": 0, "high": 4}, THRESHOLDS)
    assert not result.passed
    failed = [c for c in result.checks if not c.passed]
    assert [c.metric for c in failed] == ["high"]
    assert "trivy gate FAILED: 4 high found (threshold: 3)" == failed[0].message


def test_non_blocking_check_only_warns():
    result = evaluate_gate("trivy", {"config": 11}, THRESHOLDS)
    assert result.passed
    assert [c.metric for c in result.warnings] == ["config"]
    assert result.warnings[0].message.startswith("Warning: 11 config found")


def test_missing_metrics_count_as_zero():
    result = evaluate_gate("trivy", {}, THRESHOLDS)
    assert result.observed() == {"critical": 0, "high": 0, "config": 0}


def test_enforce_gate_raises_with_failed_checks():
    result = evaluate_gate("snyk", {"critical": 1}, THRESHOLDS)
    with pytest.raises(GateFailedError) as excinfo:
        enforce_gate(result)
    assert excinfo.value.details["failed_checks"] == ["critical"]
    assert excinfo.value.result is result


def test_failure_payload_lists_metrics_and_thresholds():
    result = evaluate_gate("policy", {"critical": 2, "high": 1}, THRESHOLDS)
    payload = failure_payload(result, {"remediation": "fix it"})
    assert payload["gate_status"] == "failed"
    assert payload["critical"] == 2
    assert payload["high"] == 1
    assert payload["thresholds"] == {"critical": 0, "high": 3, "config": 10}
    assert payload["timestamp"] == result.timestamp
    assert payload["remediation"] == "fix it"
