# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Software composition analysis stage (Snyk).

Pipeline
--------
1. Validate CI variables and the token format, then ``snyk auth``
2. Discover dependency manifests (test/vendor/build trees skipped)
3. ``snyk test`` once per manifest directory; exit 1 results are merged
4. License audit (``--print-deps --dev``)
5. Reports, best-effort ``snyk monitor``, gate (critical, high, license)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from tqdm import tqdm

from secgate.config import Config
from secgate.core.exceptions import FileSystemError, ToolExecutionError
from secgate.core.gates import evaluate_gate
from secgate.core.logging_config import get_logger
from secgate.core.models._shared import now_iso
from secgate.core.models.parsers import (
    count_license_issues,
    count_snyk_severities,
    snyk_json_to_findings,
    snyk_vulnerabilities,
)
from secgate.core.models.schema import Threshold
from secgate.infra.reports import (
    findings_to_sarif,
    gitlab_report,
    render_html_report,
    write_env,
    write_json,
    write_text,
)
from secgate.infra.tools import SnykTool
from secgate.infra.tools.snyk import SNYK_CLEAN, SNYK_ISSUES

from .common import StageReport, finish_gate, stage_dir
from .environment import snyk_environment

logger = get_logger(__name__)

REPORT_DIR = "sca"
ENV_FILE = "snyk-results.env"

MANIFEST_NAMES = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pom.xml",
    "build.gradle",
    "requirements.txt",
    "Pipfile",
    "Pipfile.lock",
    "composer.json",
    "composer.lock",
    "Gemfile",
    "Gemfile.lock",
    "go.mod",
    "go.sum",
    "Cargo.toml",
    "Cargo.lock",
)
SKIPPED_DIRS = {"test", "tests", "spec", "node_modules", "vendor", "target", "build"}


def snyk_thresholds(config: Config) -> List[Threshold]:
    gates = config.gates
    return [
        Threshold(metric="critical", maximum=gates.snyk_critical,
                  label="critical dependency vulnerabilities"),
        Threshold(metric="high", maximum=gates.snyk_high,
                  label="high dependency vulnerabilities"),
        Threshold(metric="license", maximum=gates.snyk_license,
                  label="license compliance issues"),
    ]


def discover_manifests(root: Path) -> List[Path]:
    """
    Return manifest paths relative to `root`, sorted.

    A manifest is skipped when any parent directory is in SKIPPED_DIRS.

    Raises
    ------
    FileSystemError
        When no manifest is found.
    """
    root = Path(root)
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root)
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS and d != ".git")
        for filename in filenames:
            if filename in MANIFEST_NAMES:
                found.append(rel_dir / filename)
    if not found:
        raise FileSystemError(str(root), "No supported manifest files found in project")
    found.sort()
    logger.info("Found %d manifest files", len(found))
    for manifest in found:
        logger.info("  %s", manifest.as_posix())
    return found


def group_by_directory(manifests: Sequence[Path]) -> Dict[Path, Path]:
    """Map each directory to its first manifest, preserving order."""
    groups: Dict[Path, Path] = {}
    for manifest in manifests:
        groups.setdefault(manifest.parent, manifest)
    return groups


def run_snyk_scan(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    snyk: Optional[SnykTool] = None,
) -> StageReport:
    environ = os.environ if environ is None else environ
    env = snyk_environment(environ)
    project, commit = env["CI_PROJECT_NAME"], env["CI_COMMIT_SHA"]
    root = Path(config.project.root)

    snyk = snyk or SnykTool(
        executable=config.tools.snyk,
        timeout_s=config.tools.timeout,
        mem_mb=config.tools.memory_limit_mb,
    )
    snyk.require_installed()
    if not snyk.authenticate(env["SNYK_TOKEN"]):
        raise ToolExecutionError("snyk", "Failed to authenticate with Snyk")
    logger.info("Successfully authenticated with Snyk")

    results_dir = stage_dir(config, REPORT_DIR)
    manifests = discover_manifests(root)
    reports = [write_text(results_dir / "discovered-manifests.txt",
                          "".join(f"{m.as_posix()}\n" for m in manifests))]

    vulns: List[dict] = []
    groups = group_by_directory(manifests)
    for directory, manifest in tqdm(groups.items(), desc="snyk test", unit="dir", disable=None):
        run = snyk.test(cwd=str(root / directory))
        if run.returncode == SNYK_CLEAN:
            logger.info("No vulnerabilities found in %s", manifest.as_posix())
        elif run.returncode == SNYK_ISSUES:
            found = snyk_vulnerabilities(run, manifest=manifest.as_posix())
            c = count_snyk_severities(found)
            logger.warning("Vulnerabilities found in %s - Critical: %d, High: %d, Medium: %d, Low: %d",
                           manifest.as_posix(), c.critical, c.high, c.medium, c.low)
            vulns.extend(found)
        else:
            logger.error("Scan error for %s (exit code: %d)", manifest.as_posix(), run.returncode)

    counts = count_snyk_severities(vulns)
    total = counts.critical + counts.high + counts.medium + counts.low
    logger.info("Vulnerability Summary: total=%d critical=%d high=%d medium=%d low=%d",
                total, counts.critical, counts.high, counts.medium, counts.low)

    license_issues = 0
    license_run = snyk.license_test(cwd=str(root))
    write_text(results_dir / "snyk-licenses.json", license_run.stdout)
    if license_run.returncode == SNYK_CLEAN:
        logger.info("No license issues found")
    elif license_run.returncode == SNYK_ISSUES:
        license_issues = count_license_issues(snyk_vulnerabilities(license_run))
        logger.warning("License issues detected: %d", license_issues)
    else:
        logger.error("License audit error (exit code: %d)", license_run.returncode)

    env_path = write_env(results_dir / ENV_FILE, {
        "SNYK_TOTAL_VULNERABILITIES": total,
        "SNYK_CRITICAL_COUNT": counts.critical,
        "SNYK_HIGH_COUNT": counts.high,
        "SNYK_MEDIUM_COUNT": counts.medium,
        "SNYK_LOW_COUNT": counts.low,
        "SNYK_LICENSE_ISSUES": license_issues,
    })
    reports.append(env_path)

    summary = {
        "total_vulnerabilities": total,
        "critical": counts.critical,
        "high": counts.high,
        "medium": counts.medium,
        "low": counts.low,
        "scan_timestamp": now_iso(),
        "project": project,
        "commit": commit,
    }
    reports.append(write_json(results_dir / "snyk-summary.json", summary))
    reports.append(write_json(results_dir / "snyk-combined-results.json",
                              {"vulnerabilities": vulns, "summary": summary}))

    findings = snyk_json_to_findings(vulns)
    reports.append(write_json(results_dir / "snyk-gitlab-dependency-scanning.json", gitlab_report(findings)))
    reports.append(write_json(results_dir / "snyk-sarif.json",
                              findings_to_sarif(findings, "Snyk", "1.0.0", "https://snyk.io/")))
    reports.append(write_text(results_dir / "sca-report.html", render_html_report(
        title=f"SCA Security Report - {project}",
        heading="Software Composition Analysis Report",
        metadata={"Project": project, "Scan Date": now_iso(), "Commit": commit},
        summary=[
            ("Critical", counts.critical, "critical"),
            ("High", counts.high, "high"),
            ("Medium", counts.medium, "medium"),
            ("Low", counts.low, "low"),
            ("License Issues", license_issues, "warning"),
        ],
        sections={"Scanned Manifests": [m.as_posix() for m in manifests]},
        footer="Generated by Snyk SCA Scanner - SecGate",
    )))

    if snyk.monitor(project, cwd=str(root)):
        logger.info("Project monitoring configured successfully")
    else:
        logger.warning("Failed to configure project monitoring (non-critical)")

    result = evaluate_gate("snyk", {
        "critical": counts.critical,
        "high": counts.high,
        "license": license_issues,
    }, snyk_thresholds(config))
    failure = finish_gate(config, result, results_dir / "sca-gate-failure.json", findings,
                          project=project, commit_sha=commit)
    if failure:
        reports.append(failure)

    return StageReport(
        gate=result,
        counts={**counts.model_dump(), "total": total, "license": license_issues},
        reports=reports,
        findings=findings,
    )


__all__ = ["run_snyk_scan", "discover_manifests", "group_by_directory", "snyk_thresholds",
           "MANIFEST_NAMES"]
