"""Core domain models.

Modules
-------
common : ToolRunResult
schema : Findings, severity counts, gate and policy results
orm : SQLAlchemy models for gate history
parsers : Scanner output parsers
"""
from __future__ import annotations

from .common import ToolRunResult
from .schema import (
    Finding,
    GateCheck,
    GateResult,
    PolicyDecision,
    PolicyMessage,
    Severity,
    SeverityCounts,
    Threshold,
)

__all__ = [
    "ToolRunResult",
    "Finding",
    "GateCheck",
    "GateResult",
    "PolicyDecision",
    "PolicyMessage",
    "Severity",
    "SeverityCounts",
    "Threshold",
]
