import json
from pathlib import Path

import pytest

from secgate.application.snyk_scan import discover_manifests, group_by_directory, run_snyk_scan
from secgate.core.exceptions import FileSystemError, ToolExecutionError
from secgate.infra.reports import read_env

from .fakes import FakeSnyk


def _issues(*severities, kind="vuln"):
    return {"vulnerabilities": [
        {"id": f"SNYK-{i}", "title": "issue", "severity": s, "type": kind,
         "packageName": "lodash", "version": "4.17.15"}
        for i, s in enumerate(severities)
    ]}


@pytest.fixture
def manifests(write):
    write("package.json", "{}")
    write("package-lock.json", "{}")
    write("services/api/requirements.txt", "flask\n")
    write("node_modules/left-pad/package.json", "{}")
    write("tests/fixtures/package.json", "{}")
    write("latest/go.mod", "module x\n")


def test_discovery_skips_vendored_and_test_trees(project_root, manifests):
    found = [p.as_posix() for p in discover_manifests(project_root)]
    assert found == [
        "latest/go.mod",
        "package-lock.json",
        "package.json",
        "services/api/requirements.txt",
    ]


def test_directory_names_are_matched_whole(project_root, write):
    write("buildkit/Cargo.toml", "")
    write("build/Cargo.toml", "")
    assert [p.as_posix() for p in discover_manifests(project_root)] == ["buildkit/Cargo.toml"]


def test_no_manifests_is_fatal(project_root):
    with pytest.raises(FileSystemError):
        discover_manifests(project_root)


def test_group_by_directory_keeps_first_manifest():
    groups = group_by_directory([Path("package-lock.json"), Path("package.json"), Path("api/go.mod")])
    assert groups == {Path("."): Path("package-lock.json"), Path("api"): Path("api/go.mod")}


def test_scan_merges_results_per_directory(config, ci_env, project_root, manifests):
    snyk = FakeSnyk(project_root, tests={
        ".": (1, _issues("critical", "high")),
        "services/api": (1, [_issues("high"), _issues("low")]),
        "latest": (2, {"error": "could not parse"}),
    })
    report = run_snyk_scan(config, ci_env, snyk=snyk)

    assert report.counts["critical"] == 1
    assert report.counts["high"] == 2
    assert report.counts["low"] == 1
    assert report.counts["total"] == 4
    assert not report.passed
    # one test per directory, not per manifest
    assert len(snyk.called("test", "--json", "--severity-threshold=high")) == 3
    assert snyk.called("auth", ci_env["SNYK_TOKEN"])
    assert snyk.called("monitor")

    out = Path(config.project.results_dir) / "sca"
    combined = json.loads((out / "snyk-combined-results.json").read_text())
    assert {v["manifest"] for v in combined["vulnerabilities"]} == {
        "package-lock.json", "services/api/requirements.txt",
    }
    env = read_env(out / "snyk-results.env")
    assert env["SNYK_CRITICAL_COUNT"] == "1"
    assert env["SNYK_TOTAL_VULNERABILITIES"] == "4"
    assert (out / "discovered-manifests.txt").read_text().splitlines()[0] == "latest/go.mod"
    assert (out / "sca-gate-failure.json").is_file()
    for name in ("snyk-gitlab-dependency-scanning.json", "snyk-sarif.json", "sca-report.html",
                 "snyk-summary.json", "snyk-licenses.json"):
        assert (out / name).is_file(), name


def test_license_issues_block(config, ci_env, project_root, write):
    write("package.json", "{}")
    snyk = FakeSnyk(project_root, licenses=(1, _issues("high", "medium", kind="license")))
    report = run_snyk_scan(config, ci_env, snyk=snyk)
    assert report.counts["license"] == 2
    assert report.counts["high"] == 0
    assert not report.passed
    assert [c.metric for c in report.gate.checks if not c.passed] == ["license"]


def test_clean_project_passes(config, ci_env, project_root, write):
    write("requirements.txt", "requests\n")
    report = run_snyk_scan(config, ci_env, snyk=FakeSnyk(project_root))
    assert report.passed
    assert report.counts["total"] == 0


def test_failed_authentication_is_fatal(config, ci_env, project_root, write):
    write("package.json", "{}")
    with pytest.raises(ToolExecutionError):
        run_snyk_scan(config, ci_env, snyk=FakeSnyk(project_root, auth_ok=False))
