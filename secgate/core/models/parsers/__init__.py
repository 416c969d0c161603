"""Scanner output parsers.

Each parser accepts raw JSON text, an already parsed payload, or a
ToolRunResult, and returns counts and/or normalized Finding rows.

Supported Tools
---------------
- Trivy : container image vulnerabilities, secrets, misconfigurations
- Snyk : dependency vulnerabilities and license issues
- Checkmarx : SAST statistics and detailed results
- Conftest : policy evaluation results (also produced by the builtin engine)

Examples
--------
>>> from secgate.core.models.parsers import summarize_trivy
>>> summarize_trivy('{"Results": []}').secrets
0
"""
from __future__ import annotations

from .checkmarx import checkmarx_results_to_findings, checkmarx_statistics_to_counts
from .conftest import (
    ConftestTally,
    conftest_messages,
    conftest_to_findings,
    tally_conftest,
)
from .snyk import (
    count_license_issues,
    count_snyk_severities,
    snyk_json_to_findings,
    snyk_vulnerabilities,
)
from .trivy import (
    TrivySummary,
    summarize_trivy,
    trivy_json_to_findings,
    trivy_misconfig_lines,
    trivy_secret_lines,
)

__all__ = [
    "checkmarx_results_to_findings",
    "checkmarx_statistics_to_counts",
    "ConftestTally",
    "conftest_messages",
    "conftest_to_findings",
    "tally_conftest",
    "count_license_issues",
    "count_snyk_severities",
    "snyk_json_to_findings",
    "snyk_vulnerabilities",
    "TrivySummary",
    "summarize_trivy",
    "trivy_json_to_findings",
    "trivy_misconfig_lines",
    "trivy_secret_lines",
]
