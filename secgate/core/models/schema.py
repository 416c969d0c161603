# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Pydantic models shared by parsers, gates, reports and the CLI.

Classes
-------
Severity : Normalized severity scale
Finding : Scanner-agnostic finding
SeverityCounts : Per-severity counters
Threshold : One gate threshold
GateCheck : Outcome of one threshold comparison
GateResult : Outcome of a whole security gate
PolicyDecision : Policy evaluation outcome for one manifest document

See Also
--------
secgate.core.gates : Threshold evaluation
secgate.core.models.parsers : Scanner output parsers
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ._shared import now_iso


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Case-insensitive lookup; anything unrecognised is UNKNOWN.

        >>> Severity.parse("CRITICAL")
        <Severity.CRITICAL: 'critical'>
        >>> Severity.parse(None)
        <Severity.UNKNOWN: 'unknown'>
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class Finding(BaseModel):
    """One normalized finding from any scanner."""

    scanner: str
    category: str
    identifier: str
    title: str = ""
    description: str = ""
    severity: Severity = Severity.UNKNOWN
    file_path: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    package: Optional[str] = None
    version: Optional[str] = None
    target: Optional[str] = None
    references: List[str] = Field(default_factory=list)
    cves: List[str] = Field(default_factory=list)
    cwes: List[str] = Field(default_factory=list)
    url: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)


class SeverityCounts(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    unknown: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low + self.info + self.unknown

    def add(self, severity: Any, count: int = 1) -> None:
        name = Severity.parse(severity).value
        setattr(self, name, getattr(self, name) + count)

    def merge(self, other: "SeverityCounts") -> "SeverityCounts":
        return SeverityCounts(**{
            name: getattr(self, name) + getattr(other, name)
            for name in SeverityCounts.model_fields
        })

    @classmethod
    def from_findings(cls, findings: List[Finding]) -> "SeverityCounts":
        counts = cls()
        for finding in findings:
            counts.add(finding.severity)
        return counts


class Threshold(BaseModel):
    """Maximum allowed count for a metric. Non-blocking thresholds only warn."""

    metric: str
    maximum: int
    blocking: bool = True
    label: Optional[str] = None


class GateCheck(BaseModel):
    metric: str
    observed: int
    threshold: int
    blocking: bool
    passed: bool
    message: str


class GateResult(BaseModel):
    gate: str
    checks: List[GateCheck]
    timestamp: str = Field(default_factory=now_iso)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks if c.blocking)

    @property
    def warnings(self) -> List[GateCheck]:
        return [c for c in self.checks if not c.blocking and not c.passed]

    def observed(self) -> Dict[str, int]:
        return {c.metric: c.observed for c in self.checks}

    def thresholds(self) -> Dict[str, int]:
        return {c.metric: c.threshold for c in self.checks}


class PolicyMessage(BaseModel):
    msg: str
    rule: Optional[str] = None


class PolicyDecision(BaseModel):
    """Default-deny outcome for one input document.

    ``allow`` is only true when the full rule set ran and produced no deny
    messages.
    """

    filename: str
    namespace: str = "main"
    kind: Optional[str] = None
    name: Optional[str] = None
    failures: List[PolicyMessage] = Field(default_factory=list)
    warnings: List[PolicyMessage] = Field(default_factory=list)
    successes: int = 0

    @property
    def allow(self) -> bool:
        return not self.failures

    def to_conftest(self) -> Dict[str, Any]:
        """Render in conftest's ``--output json`` shape."""
        return {
            "filename": self.filename,
            "namespace": self.namespace,
            "successes": self.successes,
            "failures": [{"msg": m.msg} for m in self.failures],
            "warnings": [{"msg": m.msg} for m in self.warnings],
        }
