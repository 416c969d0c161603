# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Container image security stage (Trivy).

Pipeline
--------
1. Validate CI variables and the image tag format
2. Make sure the image is available locally (inspect, else pull)
3. Refresh the vulnerability databases (best effort)
4. Vulnerability scan (fatal on tool error), secret and config scans
   (tool errors count as zero findings)
5. Reports: summary JSON, GitLab container scanning, SARIF, HTML, .env
6. Gate: critical, high and secrets block; config issues only warn
7. Cleanup of ``*.tmp`` files and, with ``CLEAR_CACHE=true``, the cache

Examples
--------
>>> report = run_trivy_scan(load_config())
>>> report.passed
True
"""
from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Dict, Mapping, Optional

from secgate.config import Config
from secgate.core.exceptions import FileSystemError, ToolExecutionError
from secgate.core.gates import evaluate_gate
from secgate.core.logging_config import get_logger
from secgate.core.models._shared import now_iso
from secgate.core.models.parsers import (
    summarize_trivy,
    trivy_json_to_findings,
    trivy_misconfig_lines,
    trivy_secret_lines,
)
from secgate.core.models.schema import Threshold
from secgate.infra.reports import (
    gitlab_report,
    read_json,
    render_html_report,
    sarif_skeleton,
    write_env,
    write_json,
    write_text,
)
from secgate.infra.tools import DockerTool, TrivyTool
from secgate.infra.tools.trivy import SCAN_OK_CODES

from .common import StageReport, finish_gate, stage_dir
from .environment import trivy_environment

logger = get_logger(__name__)

REPORT_DIR = "container-security"
ENV_FILE = "trivy-results.env"


def trivy_thresholds(config: Config):
    gates = config.gates
    return [
        Threshold(metric="critical", maximum=gates.trivy_critical,
                  label="critical container vulnerabilities"),
        Threshold(metric="high", maximum=gates.trivy_high,
                  label="high container vulnerabilities"),
        Threshold(metric="secrets", maximum=gates.trivy_secrets,
                  label="secrets detected in container"),
        Threshold(metric="config", maximum=gates.trivy_config, blocking=False,
                  label="configuration issues"),
    ]


def ensure_image(docker: DockerTool, image: str) -> Dict[str, object]:
    """Inspect the image, pulling it first when it is not present locally."""
    logger.info("Validating container image accessibility...")
    if not docker.image_exists(image):
        logger.info("Image not found locally, attempting to pull...")
        if not docker.pull(image):
            raise ToolExecutionError("docker", f"Failed to access container image: {image}")
    info = docker.inspect(image)
    logger.info("Image %s id=%s size=%d MB created=%s",
                image, info["id"], int(info["size"]) // (1024 * 1024), info["created"])
    return info


def _optional_scan(trivy: TrivyTool, image: str, output: Path, scanner: str, key: str) -> int:
    run = trivy.scan_image(image, output, scanners=scanner)
    if not run.ok(SCAN_OK_CODES):
        logger.warning("%s scan failed with exit code: %d (non-critical)", scanner, run.returncode)
        return 0
    if not output.is_file():
        return 0
    payload = read_json(output)
    summary = summarize_trivy(payload)
    count = summary.secrets if key == "secrets" else summary.misconfigurations
    lines = trivy_secret_lines(payload) if key == "secrets" else trivy_misconfig_lines(payload)
    if count:
        logger.warning("%d %s issue(s) detected:", count, scanner)
        for line in lines:
            logger.warning("  - %s", line)
    return count


def cleanup(results_dir: Path, cache_dir: Optional[str], clear_cache: bool) -> None:
    for tmp in results_dir.glob("*.tmp"):
        tmp.unlink()
    if clear_cache and cache_dir:
        shutil.rmtree(cache_dir, ignore_errors=True)
        logger.info("Cache cleared")


def run_trivy_scan(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    trivy: Optional[TrivyTool] = None,
    docker: Optional[DockerTool] = None,
) -> StageReport:
    environ = os.environ if environ is None else environ
    env = trivy_environment(environ)
    image = f"{env['CI_REGISTRY_IMAGE']}:{env['IMAGE_TAG']}"
    project, commit = env["CI_PROJECT_NAME"], env["CI_COMMIT_SHA"]

    tools = config.tools
    trivy = trivy or TrivyTool(
        executable=tools.trivy,
        cache_dir=tools.trivy_cache_dir,
        scan_timeout=tools.trivy_timeout,
        timeout_s=tools.timeout,
        mem_mb=tools.memory_limit_mb,
    )
    docker = docker or DockerTool(executable=tools.docker, timeout_s=tools.timeout)
    trivy.require_installed()

    results_dir = stage_dir(config, REPORT_DIR)
    env_path = results_dir / ENV_FILE
    logger.info("Starting Trivy container security scan of %s", image)

    if not trivy.download_db():
        logger.warning("Failed to update vulnerability database, using cached version")
    if not trivy.download_java_db():
        logger.warning("Failed to update Java vulnerability database, using cached version")

    info = ensure_image(docker, image)
    write_env(env_path, {"SCANNED_IMAGE": image, "IMAGE_ID": info["id"], "IMAGE_SIZE": info["size"]})

    vuln_path = results_dir / "trivy-vulnerabilities.json"
    run = trivy.scan_image(image, vuln_path)
    if not run.ok(SCAN_OK_CODES):
        raise ToolExecutionError("trivy", f"Vulnerability scan failed with exit code: {run.returncode}")
    if not vuln_path.is_file():
        raise FileSystemError(str(vuln_path), "Vulnerability scan output file not found")

    scan_data = read_json(vuln_path)
    counts = summarize_trivy(scan_data).vulnerabilities
    findings = trivy_json_to_findings(scan_data, image=image)
    logger.info("Vulnerability Summary: total=%d critical=%d high=%d medium=%d low=%d unknown=%d",
                counts.total, counts.critical, counts.high, counts.medium, counts.low, counts.unknown)

    secrets = _optional_scan(trivy, image, results_dir / "trivy-secrets.json", "secret", "secrets")
    config_issues = _optional_scan(trivy, image, results_dir / "trivy-config.json", "config", "config")

    write_env(env_path, {
        "TRIVY_TOTAL_VULNERABILITIES": counts.total,
        "TRIVY_CRITICAL_COUNT": counts.critical,
        "TRIVY_HIGH_COUNT": counts.high,
        "TRIVY_MEDIUM_COUNT": counts.medium,
        "TRIVY_LOW_COUNT": counts.low,
        "TRIVY_UNKNOWN_COUNT": counts.unknown,
        "TRIVY_SECRETS_FOUND": secrets,
        "TRIVY_CONFIG_ISSUES": config_issues,
    })

    reports = [vuln_path, env_path]
    reports.append(write_json(results_dir / "vulnerability-summary.json", {
        "project": project,
        "image": image,
        "commit": commit,
        "scan_timestamp": now_iso(),
        "summary": {
            "total_vulnerabilities": counts.critical + counts.high + counts.medium + counts.low,
            "critical": counts.critical,
            "high": counts.high,
            "medium": counts.medium,
            "low": counts.low,
        },
        "scan_results": scan_data,
    }))
    reports.append(write_json(results_dir / "trivy-gitlab-container-scanning.json",
                              gitlab_report(findings, image=image)))

    sarif_path = results_dir / "trivy-sarif.json"
    if not trivy.convert_sarif(vuln_path, sarif_path):
        logger.warning("SARIF conversion failed, creating basic SARIF structure")
        write_json(sarif_path, sarif_skeleton("Trivy", trivy.version(),
                                              "https://aquasecurity.github.io/trivy/"))
    reports.append(sarif_path)

    reports.append(write_text(results_dir / "container-security-report.html", render_html_report(
        title=f"Container Security Report - {project}",
        heading="Container Security Report",
        metadata={"Project": project, "Image": image, "Scan Date": now_iso(), "Commit": commit},
        summary=[
            ("Critical Vulnerabilities", counts.critical, "critical"),
            ("High Vulnerabilities", counts.high, "high"),
            ("Medium Vulnerabilities", counts.medium, "medium"),
            ("Low Vulnerabilities", counts.low, "low"),
            ("Secrets Detected", secrets, "warning"),
            ("Configuration Issues", config_issues, "warning"),
        ],
        sections={"Scan Configuration": [
            f"Scanner: Trivy {trivy.version()}",
            "Scan Types: Vulnerabilities, Secrets, Configuration",
            "Severity Levels: CRITICAL, HIGH",
        ]},
        footer="Generated by Trivy Container Scanner - SecGate",
    )))

    result = evaluate_gate("trivy", {
        "critical": counts.critical,
        "high": counts.high,
        "secrets": secrets,
        "config": config_issues,
    }, trivy_thresholds(config))
    failure = finish_gate(
        config, result, results_dir / "container-security-gate-failure.json", findings,
        project=project, commit_sha=commit,
    )
    if failure:
        reports.append(failure)

    cleanup(results_dir, tools.trivy_cache_dir, environ.get("CLEAR_CACHE", "false") == "true")

    return StageReport(
        gate=result,
        counts={**counts.model_dump(), "secrets": secrets, "config": config_issues},
        reports=reports,
        findings=findings,
    )


__all__ = ["run_trivy_scan", "trivy_thresholds", "ensure_image", "REPORT_DIR"]
