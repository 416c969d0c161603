"""Parser for Snyk Open Source (``snyk test --json``) results.

``snyk test --json`` prints a single object for one project and a list of
objects when ``--all-projects`` finds several; both are accepted. Every
object carries a ``vulnerabilities`` array whose entries have a lowercase
``severity`` and a ``type`` (``license`` for license policy issues).

Functions
---------
snyk_vulnerabilities : Flatten vulnerabilities from one or many projects
count_snyk_severities : Count critical/high/medium/low vulnerabilities
count_license_issues : Count license policy issues
snyk_json_to_findings : Normalize vulnerabilities into Finding rows

See Also
--------
secgate.infra.tools.snyk : Snyk CLI wrapper
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .._shared import as_dict, as_list, coalesce_payload
from ..schema import Finding, Severity, SeverityCounts

# Only these four severities feed the SCA totals
COUNTED_SEVERITIES = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)


def snyk_vulnerabilities(run: Any, *, manifest: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return every vulnerability entry, tagged with `manifest` when given."""
    payload = coalesce_payload(run, "snyk")
    projects = payload if isinstance(payload, list) else [payload]
    vulns: List[Dict[str, Any]] = []
    for project in projects:
        if not isinstance(project, dict):
            continue
        for vuln in as_list(project.get("vulnerabilities")):
            if not isinstance(vuln, dict):
                continue
            if manifest is not None:
                vuln = {**vuln, "manifest": manifest}
            vulns.append(vuln)
    return vulns


def count_snyk_severities(vulns: List[Dict[str, Any]]) -> SeverityCounts:
    counts = SeverityCounts()
    for vuln in vulns:
        severity = Severity.parse(vuln.get("severity"))
        if severity in COUNTED_SEVERITIES:
            counts.add(severity)
    return counts


def count_license_issues(vulns: List[Dict[str, Any]]) -> int:
    return sum(1 for v in vulns if v.get("type") == "license")


def snyk_json_to_findings(vulns: List[Dict[str, Any]]) -> List[Finding]:
    findings: List[Finding] = []
    for vuln in vulns:
        identifiers = as_dict(vuln.get("identifiers"))
        cves = [c for c in as_list(identifiers.get("CVE")) if isinstance(c, str)]
        cwes = [c for c in as_list(identifiers.get("CWE")) if isinstance(c, str)]
        title = vuln.get("title") or ""
        identifier = vuln.get("id") or f"{title}-{cves[0] if cves else 'unknown'}"
        findings.append(Finding(
            scanner="snyk",
            category="license" if vuln.get("type") == "license" else "dependency_scanning",
            identifier=identifier,
            title=title,
            description=vuln.get("description") or "",
            severity=vuln.get("severity"),
            file_path=vuln.get("manifest"),
            package=vuln.get("packageName"),
            version=vuln.get("version"),
            cves=cves,
            cwes=cwes,
            url=vuln.get("url"),
        ))
    return findings


__all__ = [
    "snyk_vulnerabilities",
    "count_snyk_severities",
    "count_license_issues",
    "snyk_json_to_findings",
]
