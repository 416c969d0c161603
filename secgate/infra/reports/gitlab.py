# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""GitLab security report rendering (schema version 14.0.0).

One renderer serves container scanning, dependency scanning and SAST; the
``location`` block depends on the finding category.

Functions
---------
gitlab_report : Findings -> ``{"version", "vulnerabilities"}``
cve_url : MITRE CVE link
cwe_url : MITRE CWE link
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from secgate.core.models.schema import Finding

GITLAB_REPORT_VERSION = "14.0.0"

SCANNER_NAMES = {
    "trivy": "Trivy",
    "snyk": "Snyk",
    "checkmarx": "Checkmarx SAST",
    "conftest": "OPA Conftest",
}


def cve_url(cve: str) -> str:
    return f"https://cve.mitre.org/cgi-bin/cvename.cgi?name={cve}"


def cwe_url(cwe: str) -> str:
    return f"https://cwe.mitre.org/data/definitions/{cwe.replace('CWE-', '')}.html"


def _location(finding: Finding, image: Optional[str]) -> Dict[str, Any]:
    if finding.category == "container_scanning":
        return {
            "dependency": {
                "package": {"name": finding.package},
                "version": finding.version,
            },
            "operating_system": finding.target or "unknown",
            "image": image,
        }
    if finding.category in ("dependency_scanning", "license"):
        return {
            "file": finding.file_path or "unknown",
            "dependency": {
                "package": {"name": finding.package or "unknown"},
                "version": finding.version or "unknown",
            },
        }
    return {
        "file": finding.file_path,
        "start_line": finding.start_line,
        "end_line": finding.end_line,
    }


def _identifiers(finding: Finding) -> List[Dict[str, Any]]:
    if finding.scanner == "trivy":
        ids = [{"type": "trivy", "name": finding.identifier, "value": finding.identifier}]
        ids += [{"type": "cve", "name": r, "value": r, "url": r} for r in finding.references]
        return ids
    if finding.scanner == "checkmarx":
        query_id = finding.references[0] if finding.references else None
        return [{"type": "checkmarx_query_id", "name": query_id, "value": query_id}]
    if finding.scanner == "conftest":
        msg = finding.references[0] if finding.references else finding.description
        return [{"type": "conftest_policy", "name": "policy_violation", "value": msg}]
    ids = [{"type": finding.scanner, "name": finding.identifier, "value": finding.identifier}]
    ids += [{"type": "cve", "name": c, "value": c, "url": cve_url(c)} for c in finding.cves]
    ids += [{"type": "cwe", "name": c, "value": c, "url": cwe_url(c)} for c in finding.cwes]
    return ids


def _message(finding: Finding) -> str:
    if finding.scanner == "trivy":
        return finding.description
    if finding.scanner == "conftest" and finding.references:
        return finding.references[0]
    return finding.title


def gitlab_vulnerability(finding: Finding, image: Optional[str] = None) -> Dict[str, Any]:
    category = "dependency_scanning" if finding.category == "license" else finding.category
    entry: Dict[str, Any] = {
        "id": finding.identifier,
        "category": category,
        "name": finding.title,
        "message": _message(finding),
        "description": finding.description,
        "severity": finding.severity.value,
        "confidence": "High",
        "scanner": {
            "id": finding.scanner,
            "name": SCANNER_NAMES.get(finding.scanner, finding.scanner),
        },
        "location": _location(finding, image),
        "identifiers": _identifiers(finding),
    }
    if finding.scanner in ("trivy", "snyk"):
        entry["links"] = [{"url": finding.url or ""}]
    return entry


def gitlab_report(findings: Sequence[Finding], image: Optional[str] = None) -> Dict[str, Any]:
    return {
        "version": GITLAB_REPORT_VERSION,
        "vulnerabilities": [gitlab_vulnerability(f, image) for f in findings],
    }


__all__ = ["GITLAB_REPORT_VERSION", "gitlab_report", "gitlab_vulnerability", "cve_url", "cwe_url"]
