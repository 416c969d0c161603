import json
from pathlib import Path

import pytest

from secgate.application.trivy_scan import run_trivy_scan
from secgate.core.exceptions import ToolExecutionError, ValidationError
from secgate.infra.reports import read_env

from .fakes import FakeDocker, FakeTrivy, trivy_payload, vuln

IMAGE = "registry.example.com/group/secure-app:1.4.2"


def _results(config) -> Path:
    return Path(config.project.results_dir) / "container-security"


def test_clean_image_passes_and_writes_reports(config, ci_env):
    trivy = FakeTrivy(vulns=trivy_payload(vuln("HIGH", "CVE-1"), vuln("MEDIUM", "CVE-2")))
    docker = FakeDocker()
    report = run_trivy_scan(config, ci_env, trivy=trivy, docker=docker)

    assert report.passed
    assert report.counts["high"] == 1
    assert report.counts["secrets"] == 0
    out = _results(config)
    for name in ("trivy-vulnerabilities.json", "vulnerability-summary.json",
                 "trivy-gitlab-container-scanning.json", "trivy-sarif.json",
                 "container-security-report.html", "trivy-results.env"):
        assert (out / name).is_file(), name
    assert not (out / "container-security-gate-failure.json").exists()

    env = read_env(out / "trivy-results.env")
    assert env["SCANNED_IMAGE"] == IMAGE
    assert env["IMAGE_ID"] == "sha256:feedface"
    assert env["TRIVY_HIGH_COUNT"] == "1"
    assert env["TRIVY_MEDIUM_COUNT"] == "1"
    assert env["TRIVY_SECRETS_FOUND"] == "0"

    summary = json.loads((out / "vulnerability-summary.json").read_text())
    assert summary["image"] == IMAGE
    assert summary["summary"]["total_vulnerabilities"] == 2
    sarif = json.loads((out / "trivy-sarif.json").read_text())
    assert sarif["runs"][0]["tool"]["driver"]["version"] == "0.50.1"


def test_vulnerability_scan_arguments(config, ci_env):
    trivy = FakeTrivy()
    run_trivy_scan(config, ci_env, trivy=trivy, docker=FakeDocker())
    [scan] = [c for c in trivy.called("image") if "--severity" in c]
    assert scan[-1] == IMAGE
    assert scan[scan.index("--severity") + 1] == "HIGH,CRITICAL"
    assert "--ignore-unfixed" in scan
    assert trivy.called("image", "--download-db-only")


def test_secrets_block_and_config_only_warns(config, ci_env):
    trivy = FakeTrivy(secrets=trivy_payload(secrets=1), config=trivy_payload(misconfigs=12))
    report = run_trivy_scan(config, ci_env, trivy=trivy, docker=FakeDocker())

    assert not report.passed
    assert report.counts["config"] == 12
    assert [c.metric for c in report.gate.warnings] == ["config"]
    failure = json.loads((_results(config) / "container-security-gate-failure.json").read_text())
    assert failure["gate_status"] == "failed"
    assert failure["secrets"] == 1
    assert failure["thresholds"]["secrets"] == 0


def test_high_threshold_boundary(config, ci_env):
    at_limit = FakeTrivy(vulns=trivy_payload(*[vuln("HIGH", f"CVE-{i}") for i in range(3)]))
    assert run_trivy_scan(config, ci_env, trivy=at_limit, docker=FakeDocker()).passed
    over = FakeTrivy(vulns=trivy_payload(*[vuln("HIGH", f"CVE-{i}") for i in range(4)]))
    assert not run_trivy_scan(config, ci_env, trivy=over, docker=FakeDocker()).passed


def test_missing_image_is_pulled(config, ci_env):
    docker = FakeDocker(present=False)
    run_trivy_scan(config, ci_env, trivy=FakeTrivy(), docker=docker)
    assert docker.called("pull", IMAGE)


def test_scanner_error_is_fatal(config, ci_env):
    with pytest.raises(ToolExecutionError):
        run_trivy_scan(config, ci_env, trivy=FakeTrivy(vuln_returncode=2), docker=FakeDocker())


def test_trivy_must_be_installed(config, ci_env):
    with pytest.raises(ToolExecutionError):
        run_trivy_scan(config, ci_env, trivy=FakeTrivy(installed=False), docker=FakeDocker())


def test_invalid_tag_fails_before_scanning(config, ci_env):
    trivy = FakeTrivy()
    with pytest.raises(ValidationError):
        run_trivy_scan(config, {**ci_env, "IMAGE_TAG": "bad tag"}, trivy=trivy, docker=FakeDocker())
    assert trivy.calls == []


def test_tmp_files_are_cleaned(config, ci_env):
    out = _results(config)
    out.mkdir(parents=True)
    (out / "partial.tmp").write_text("x")
    run_trivy_scan(config, ci_env, trivy=FakeTrivy(), docker=FakeDocker())
    assert not (out / "partial.tmp").exists()


def test_cache_is_cleared_only_on_request(config, ci_env):
    cache = Path(config.tools.trivy_cache_dir)
    (cache / "db").mkdir(parents=True)
    (cache / "db" / "trivy.db").write_text("db")

    run_trivy_scan(config, ci_env, trivy=FakeTrivy(), docker=FakeDocker())
    assert (cache / "db" / "trivy.db").is_file()

    run_trivy_scan(config, {**ci_env, "CLEAR_CACHE": "true"}, trivy=FakeTrivy(), docker=FakeDocker())
    assert not cache.exists()
