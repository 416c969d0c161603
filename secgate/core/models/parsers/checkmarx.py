"""Parsers for Checkmarx SAST REST API payloads.

Functions
---------
checkmarx_statistics_to_counts : ``resultsStatistics`` -> SeverityCounts
checkmarx_results_to_findings : ``results`` -> Finding rows
"""
from __future__ import annotations

from typing import Any, List

from .._shared import as_int, as_list, coalesce_payload
from ..schema import Finding, SeverityCounts


def checkmarx_statistics_to_counts(run: Any) -> SeverityCounts:
    """Missing or null counters are treated as zero."""
    payload = coalesce_payload(run, "checkmarx")
    if not isinstance(payload, dict):
        payload = {}
    return SeverityCounts(
        critical=as_int(payload.get("criticalSeverity")),
        high=as_int(payload.get("highSeverity")),
        medium=as_int(payload.get("mediumSeverity")),
        low=as_int(payload.get("lowSeverity")),
        info=as_int(payload.get("infoSeverity")),
    )


def checkmarx_results_to_findings(run: Any) -> List[Finding]:
    payload = coalesce_payload(run, "checkmarx")
    findings: List[Finding] = []
    for item in as_list(payload):
        if not isinstance(item, dict):
            continue
        line = item.get("line")
        findings.append(Finding(
            scanner="checkmarx",
            category="sast",
            identifier=str(item.get("id", "")),
            title=item.get("queryName") or "",
            description=item.get("description") or "",
            severity=item.get("severity"),
            file_path=item.get("fileName"),
            start_line=as_int(line, default=None),
            end_line=as_int(line, default=None),
            references=[str(item["queryId"])] if item.get("queryId") is not None else [],
        ))
    return findings


__all__ = ["checkmarx_statistics_to_counts", "checkmarx_results_to_findings"]
