import json

import pytest

from secgate.core.exceptions import ParserError
from secgate.core.models import Severity, SeverityCounts, ToolRunResult
from secgate.core.models.parsers import (
    checkmarx_results_to_findings,
    checkmarx_statistics_to_counts,
    conftest_messages,
    conftest_to_findings,
    count_license_issues,
    count_snyk_severities,
    snyk_json_to_findings,
    snyk_vulnerabilities,
    summarize_trivy,
    tally_conftest,
    trivy_json_to_findings,
    trivy_secret_lines,
)

from .fakes import trivy_payload, vuln


def test_summarize_trivy_counts_every_severity_secret_and_misconfig():
    payload = trivy_payload(
        vuln("CRITICAL", "CVE-2024-0001"),
        vuln("HIGH", "CVE-2024-0002"),
        vuln("HIGH", "CVE-2024-0003"),
        vuln("LOW", "CVE-2024-0004"),
        vuln("weird", "GHSA-xxxx"),
        secrets=2,
        misconfigs=1,
    )
    summary = summarize_trivy(payload)
    assert summary.vulnerabilities.critical == 1
    assert summary.vulnerabilities.high == 2
    assert summary.vulnerabilities.low == 1
    assert summary.vulnerabilities.unknown == 1
    assert summary.vulnerabilities.total == 5
    assert summary.secrets == 2
    assert summary.misconfigurations == 1


def test_summarize_trivy_tolerates_null_results():
    assert summarize_trivy({"Results": None}).vulnerabilities.total == 0
    assert summarize_trivy('{"Results": [{"Target": "x", "Vulnerabilities": null}]}').secrets == 0
    assert summarize_trivy("").vulnerabilities.total == 0


def test_invalid_json_text_raises_parser_error():
    with pytest.raises(ParserError):
        summarize_trivy("{not json")


def test_trivy_findings_keep_package_and_cve():
    findings = trivy_json_to_findings(trivy_payload(vuln("CRITICAL", "CVE-2024-0001", "zlib", "1.2")),
                                      image="app:1.0")
    [finding] = findings
    assert finding.severity is Severity.CRITICAL
    assert finding.package == "zlib"
    assert finding.version == "1.2"
    assert finding.cves == ["CVE-2024-0001"]
    assert finding.category == "container_scanning"


def test_trivy_secret_lines():
    assert trivy_secret_lines(trivy_payload(secrets=1)) == [
        "aws-access-key-id in app:1.0 (alpine 3.19):1"
    ]


def test_snyk_accepts_single_project_and_list_from_run_result():
    single = {"vulnerabilities": [{"id": "SNYK-1", "severity": "high"}]}
    assert len(snyk_vulnerabilities(single)) == 1

    many = [single, {"vulnerabilities": [{"id": "SNYK-2", "severity": "critical"}]}]
    run = ToolRunResult(tool="snyk", cmd=["snyk"], cwd=".", returncode=1, duration_s=0,
                        stdout=json.dumps(many), stderr="")
    vulns = snyk_vulnerabilities(run, manifest="api/package.json")
    assert [v["manifest"] for v in vulns] == ["api/package.json"] * 2


def test_snyk_counts_ignore_unknown_severity_and_count_licenses():
    vulns = [
        {"severity": "critical"},
        {"severity": "high"},
        {"severity": "medium"},
        {"severity": "info"},
        {"severity": "high", "type": "license"},
    ]
    counts = count_snyk_severities(vulns)
    assert (counts.critical, counts.high, counts.medium, counts.low) == (1, 2, 1, 0)
    assert counts.info == 0
    assert count_license_issues(vulns) == 1


def test_snyk_findings_carry_identifiers():
    [finding] = snyk_json_to_findings([{
        "id": "SNYK-JS-LODASH-1",
        "title": "Prototype Pollution",
        "severity": "high",
        "packageName": "lodash",
        "version": "4.17.15",
        "identifiers": {"CVE": ["CVE-2020-8203"], "CWE": ["CWE-400"]},
        "manifest": "package.json",
    }])
    assert finding.identifier == "SNYK-JS-LODASH-1"
    assert finding.cves == ["CVE-2020-8203"]
    assert finding.cwes == ["CWE-400"]
    assert finding.file_path == "package.json"


def test_snyk_malformed_identifiers_are_ignored():
    [finding] = snyk_json_to_findings([{
        "title": "Regular Expression Denial of Service",
        "severity": "medium",
        "identifiers": ["CVE-2021-23337"],
    }])
    assert finding.identifier == "Regular Expression Denial of Service-unknown"
    assert finding.cves == []


def test_checkmarx_statistics_treat_missing_as_zero():
    counts = checkmarx_statistics_to_counts({"highSeverity": 3, "mediumSeverity": None})
    assert counts == SeverityCounts(high=3)


def test_checkmarx_results_to_findings():
    [finding] = checkmarx_results_to_findings([{
        "id": 7, "queryName": "SQL_Injection", "severity": "High",
        "fileName": "src/db.py", "line": "42", "queryId": 1001,
    }])
    assert finding.identifier == "7"
    assert finding.start_line == 42
    assert finding.severity is Severity.HIGH
    assert finding.references == ["1001"]


def test_tally_conftest_counts_per_entry():
    results = [
        {"filename": "a.yaml", "failures": [{"msg": "bad"}, {"msg": "worse"}], "warnings": []},
        {"filename": "b.yaml", "failures": [], "warnings": [{"msg": "meh"}]},
        {"filename": "c.yaml", "failures": [{"msg": "bad"}], "warnings": [{"msg": "meh"}]},
        {"filename": "d.yaml", "failures": None, "warnings": None},
    ]
    tally = tally_conftest(results)
    assert (tally.failures, tally.warnings, tally.successes) == (2, 2, 1)
    assert tally.results == 5


def test_conftest_messages_and_findings():
    results = [{"filename": "k8s/app.yaml", "failures": [{"msg": "no root"}]}]
    assert conftest_messages(results) == [("k8s/app.yaml", "no root")]
    [finding] = conftest_to_findings(results)
    assert finding.identifier == "k8s_app.yaml-no_root"
    assert finding.severity is Severity.HIGH
    assert finding.references == ["no root"]
