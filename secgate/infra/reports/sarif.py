"""SARIF 2.1.0 rendering.

Used as the fallback when a scanner cannot produce SARIF itself, and for
Snyk dependency results.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from secgate.core.models.schema import Finding, Severity

SARIF_SCHEMA = "https://schemastore.azurewebsites.net/schemas/json/sarif-2.1.0.json"
SARIF_VERSION = "2.1.0"

_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
    Severity.UNKNOWN: "none",
}


def sarif_skeleton(tool_name: str, version: str, information_uri: str) -> Dict[str, Any]:
    """Empty single-run SARIF log."""
    return {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": tool_name,
                        "version": version,
                        "informationUri": information_uri,
                    }
                },
                "results": [],
            }
        ],
    }


def findings_to_sarif(
    findings: Sequence[Finding],
    tool_name: str,
    version: str,
    information_uri: str,
) -> Dict[str, Any]:
    log = sarif_skeleton(tool_name, version, information_uri)
    run = log["runs"][0]
    rules: Dict[str, Dict[str, Any]] = {}
    results: List[Dict[str, Any]] = []
    for finding in findings:
        if finding.identifier not in rules:
            rule: Dict[str, Any] = {
                "id": finding.identifier,
                "shortDescription": {"text": finding.title or finding.identifier},
            }
            if finding.url:
                rule["helpUri"] = finding.url
            rules[finding.identifier] = rule
        location = finding.file_path or finding.target or "unknown"
        region = {"startLine": finding.start_line} if finding.start_line else None
        physical: Dict[str, Any] = {"artifactLocation": {"uri": location}}
        if region:
            physical["region"] = region
        package = f" in {finding.package}@{finding.version}" if finding.package else ""
        results.append({
            "ruleId": finding.identifier,
            "level": _LEVELS[finding.severity],
            "message": {"text": f"{finding.title or finding.identifier}{package}"},
            "locations": [{"physicalLocation": physical}],
        })
    run["tool"]["driver"]["rules"] = list(rules.values())
    run["results"] = results
    return log


__all__ = ["sarif_skeleton", "findings_to_sarif", "SARIF_SCHEMA", "SARIF_VERSION"]
