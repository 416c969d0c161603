"""Parser for Trivy image scan JSON.

Trivy reports one entry per scan target under ``Results``; each target may
carry ``Vulnerabilities``, ``Secrets`` and ``Misconfigurations`` arrays, any
of which may be missing or null.

Functions
---------
summarize_trivy : Count vulnerabilities by severity, secrets and misconfigurations
trivy_json_to_findings : Normalize vulnerabilities into Finding rows
trivy_secret_lines : Human-readable secret locations (no secret values)
trivy_misconfig_lines : Human-readable misconfiguration titles

Examples
--------
>>> payload = {"Results": [{"Vulnerabilities": [{"VulnerabilityID": "CVE-1", "Severity": "HIGH"}]}]}
>>> summarize_trivy(payload).vulnerabilities.high
1
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from .._shared import as_list, coalesce_payload
from ..schema import Finding, SeverityCounts


class TrivySummary(BaseModel):
    vulnerabilities: SeverityCounts = Field(default_factory=SeverityCounts)
    secrets: int = 0
    misconfigurations: int = 0


def _results(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        return [r for r in as_list(payload.get("Results")) if isinstance(r, dict)]
    return []


def _iter(payload: Any, key: str) -> Iterator[Tuple[Dict[str, Any], Dict[str, Any]]]:
    for result in _results(payload):
        for item in as_list(result.get(key)):
            if isinstance(item, dict):
                yield result, item


def summarize_trivy(run: Any) -> TrivySummary:
    """Count every vulnerability, secret and misconfiguration in a report."""
    payload = coalesce_payload(run, "trivy")
    summary = TrivySummary()
    for _, vuln in _iter(payload, "Vulnerabilities"):
        summary.vulnerabilities.add(vuln.get("Severity"))
    summary.secrets = sum(1 for _ in _iter(payload, "Secrets"))
    summary.misconfigurations = sum(1 for _ in _iter(payload, "Misconfigurations"))
    return summary


def trivy_json_to_findings(run: Any, *, image: Optional[str] = None) -> List[Finding]:
    payload = coalesce_payload(run, "trivy")
    findings: List[Finding] = []
    for result, vuln in _iter(payload, "Vulnerabilities"):
        vuln_id = vuln.get("VulnerabilityID")
        pkg = vuln.get("PkgName") or ""
        installed = vuln.get("InstalledVersion") or ""
        references = [r for r in as_list(vuln.get("References")) if isinstance(r, str)]
        findings.append(Finding(
            scanner="trivy",
            category="container_scanning",
            identifier=vuln_id or f"{pkg}-{installed}",
            title=vuln.get("Title") or vuln_id or "",
            description=vuln.get("Description") or "",
            severity=vuln.get("Severity"),
            package=pkg or None,
            version=installed or None,
            target=result.get("Target") or image,
            references=references,
            cves=[vuln_id] if vuln_id and vuln_id.startswith("CVE-") else [],
            url=vuln.get("PrimaryURL"),
        ))
    return findings


def trivy_secret_lines(run: Any) -> List[str]:
    payload = coalesce_payload(run, "trivy")
    return [
        f"{secret.get('RuleID', 'unknown')} in {result.get('Target', '?')}:{secret.get('StartLine', '?')}"
        for result, secret in _iter(payload, "Secrets")
    ]


def trivy_misconfig_lines(run: Any) -> List[str]:
    payload = coalesce_payload(run, "trivy")
    return [
        f"{item.get('Type', 'unknown')}: {item.get('Title', '')}"
        for _, item in _iter(payload, "Misconfigurations")
    ]


__all__ = [
    "TrivySummary",
    "summarize_trivy",
    "trivy_json_to_findings",
    "trivy_secret_lines",
    "trivy_misconfig_lines",
]
