# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Security gate evaluation.

A gate compares observed finding counts against maximum allowed counts. A
check passes when ``observed <= maximum``. Blocking checks decide the gate;
non-blocking checks only produce warnings.

Functions
---------
evaluate_gate : Compare observed counts against thresholds
enforce_gate : Raise GateFailedError when a gate did not pass
log_gate : Emit one log line per check
failure_payload : JSON body written when a gate fails

Examples
--------
>>> from secgate.core.models import Threshold
>>> result = evaluate_gate("sast", {"critical": 0, "high": 6},
...                        [Threshold(metric="critical", maximum=0),
...                         Threshold(metric="high", maximum=5)])
>>> result.passed
False
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from secgate.core.exceptions import GateFailedError
from secgate.core.logging_config import get_logger
from secgate.core.models.schema import GateCheck, GateResult, Threshold

logger = get_logger(__name__)


def evaluate_gate(
    gate: str,
    observed: Mapping[str, int],
    thresholds: Sequence[Threshold],
) -> GateResult:
    """Evaluate every threshold; metrics absent from `observed` count as 0."""
    checks = []
    for threshold in thresholds:
        value = int(observed.get(threshold.metric, 0) or 0)
        passed = value <= threshold.maximum
        label = threshold.label or threshold.metric
        if passed:
            message = f"{value} {label} (threshold: {threshold.maximum})"
        elif threshold.blocking:
            message = f"{gate} gate FAILED: {value} {label} found (threshold: {threshold.maximum})"
        else:
            message = f"Warning: {value} {label} found (threshold: {threshold.maximum})"
        checks.append(GateCheck(
            metric=threshold.metric,
            observed=value,
            threshold=threshold.maximum,
            blocking=threshold.blocking,
            passed=passed,
            message=message,
        ))
    return GateResult(gate=gate, checks=checks)


def log_gate(result: GateResult, log: Optional[logging.Logger] = None) -> None:
    log = log or logger
    for check in result.checks:
        if check.passed:
            log.debug(check.message)
        elif check.blocking:
            log.error(check.message)
        else:
            log.warning(check.message)
    if result.passed:
        log.info("%s security gate passed", result.gate)
    else:
        log.error("%s security gate failed - pipeline will be terminated", result.gate)


def enforce_gate(result: GateResult) -> GateResult:
    if not result.passed:
        raise GateFailedError(result)
    return result


def failure_payload(result: GateResult, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the ``*-gate-failure.json`` body: status, observed counts, thresholds."""
    payload: Dict[str, Any] = {"gate_status": "passed" if result.passed else "failed"}
    payload.update(result.observed())
    payload["thresholds"] = result.thresholds()
    payload["timestamp"] = result.timestamp
    if extra:
        payload.update(extra)
    return payload


__all__ = ["evaluate_gate", "enforce_gate", "log_gate", "failure_payload"]
