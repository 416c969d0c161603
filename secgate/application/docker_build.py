# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Dockerfile hygiene checks and secure image build.

The static checks are advisory: they log warnings and never fail the build.
The post-build Trivy gate (critical 0, high 5) only fails the stage inside
CI (``CI=true``); locally it is reported. With ``PUSH_IMAGE=true`` the
image and its security-approved tag are pushed unless an enforced gate
failed; ``secgate push`` in ``image_push.py`` is the full push pipeline.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Union

from secgate.config import Config
from secgate.core.exceptions import FileSystemError, ToolExecutionError
from secgate.core.gates import evaluate_gate
from secgate.core.logging_config import get_logger
from secgate.core.models._shared import now_iso
from secgate.core.models.parsers import summarize_trivy, trivy_json_to_findings
from secgate.core.models.schema import Severity, Threshold
from secgate.infra.reports import read_json, write_text
from secgate.infra.tools import DockerTool, GitTool, TrivyTool
from secgate.infra.tools.trivy import SCAN_OK_CODES

from .common import StageReport, finish_gate, stage_dir
from .image_push import approved_tag, full_image_name, registry_login

logger = get_logger(__name__)

REPORT_DIR = "build"

_USER_ROOT = re.compile(r"^\s*USER\s+root\b", re.IGNORECASE | re.MULTILINE)
_USER_ANY = re.compile(r"^\s*USER\s+", re.IGNORECASE | re.MULTILINE)
_HEALTHCHECK = re.compile(r"^\s*HEALTHCHECK\b", re.IGNORECASE | re.MULTILINE)
_SECURITY_LABEL = re.compile(r"^\s*LABEL\b.*security", re.IGNORECASE | re.MULTILINE)
_FROM_LATEST = re.compile(r"^\s*FROM\s+\S+:latest\b", re.IGNORECASE | re.MULTILINE)


@dataclass
class BuildSettings:
    """Build inputs, read from the environment by :meth:`from_env`."""

    image_name: str = "secure-app"
    image_tag: str = "latest"
    registry: str = ""
    dockerfile: str = "Dockerfile"
    context: str = "."
    security_scan: bool = True
    commit_sha: Optional[str] = None
    push: bool = False
    username: str = ""
    password: str = ""

    @property
    def image(self) -> str:
        return full_image_name(self.image_name, self.image_tag, self.registry)

    @classmethod
    def from_env(cls, environ: Mapping[str, str], root: Union[str, Path] = ".") -> "BuildSettings":
        root = Path(root)
        return cls(
            image_name=environ.get("IMAGE_NAME") or "secure-app",
            image_tag=environ.get("IMAGE_TAG") or "latest",
            registry=environ.get("REGISTRY_URL", ""),
            dockerfile=environ.get("DOCKERFILE_PATH") or str(root / "Dockerfile"),
            context=environ.get("BUILD_CONTEXT") or str(root),
            security_scan=environ.get("SECURITY_SCAN", "true") == "true",
            commit_sha=environ.get("CI_COMMIT_SHA") or None,
            push=environ.get("PUSH_IMAGE", "false") == "true",
            username=environ.get("REGISTRY_USER", ""),
            password=environ.get("REGISTRY_PASSWORD", ""),
        )


def build_thresholds(config: Config) -> List[Threshold]:
    gates = config.gates
    return [
        Threshold(metric="critical", maximum=gates.build_critical, label="critical vulnerabilities"),
        Threshold(metric="high", maximum=gates.build_high, label="high vulnerabilities"),
    ]


def validate_dockerfile(path: Union[str, Path]) -> List[str]:
    """
    Return hygiene issues found in a Dockerfile.

    Raises
    ------
    FileSystemError
        If the Dockerfile cannot be read.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FileSystemError(str(path), f"Cannot read Dockerfile: {e}") from e

    issues: List[str] = []
    if _USER_ROOT.search(text) or not _USER_ANY.search(text):
        issues.append("Dockerfile may run as root user")
    if not _HEALTHCHECK.search(text):
        issues.append("Dockerfile missing HEALTHCHECK instruction")
    if not _SECURITY_LABEL.search(text):
        issues.append("Dockerfile missing security labels")
    if _FROM_LATEST.search(text):
        issues.append("Dockerfile uses 'latest' tag (not recommended for production)")

    for issue in issues:
        logger.warning(issue)
    if issues:
        logger.warning("Dockerfile security validation found %d potential issues", len(issues))
    else:
        logger.info("Dockerfile security validation passed")
    return issues


def resolve_commit(settings: BuildSettings, git: Optional[GitTool] = None) -> str:
    if settings.commit_sha:
        return settings.commit_sha
    git = git or GitTool(repo_root=settings.context)
    if not git.is_installed():
        return "unknown"
    run = git.run(["rev-parse", "HEAD"], cwd=settings.context)
    return run.stdout.strip() if run.ok() and run.stdout.strip() else "unknown"


def check_build_prerequisites(docker: DockerTool, settings: BuildSettings) -> None:
    docker.require_installed()
    if not docker.daemon_running():
        raise ToolExecutionError("docker", "Docker daemon is not running")
    if not Path(settings.dockerfile).is_file():
        raise FileSystemError(settings.dockerfile, "Dockerfile not found")


def _markdown_report(image: str, critical: int, high: int, findings) -> str:
    lines = [
        "# Container Security Scan Report",
        "",
        f"**Image:** `{image}`  ",
        f"**Scan Date:** {now_iso()}",
        "",
        "## Vulnerability Summary",
        "",
        f"- Critical: {critical}",
        f"- High: {high}",
        "",
    ]
    top = [f for f in findings if f.severity in (Severity.CRITICAL, Severity.HIGH)][:20]
    if top:
        lines += ["| ID | Severity | Package | Version |", "|---|---|---|---|"]
        lines += [
            f"| {f.identifier} | {f.severity.value} | {f.package or ''} | {f.version or ''} |"
            for f in top
        ]
    lines += [
        "",
        "## Recommendations",
        "",
        "1. Update base images to latest secure versions",
        "2. Review and fix high/critical vulnerabilities",
        "3. Implement security best practices in Dockerfile",
        "",
    ]
    return "\n".join(lines)


def scan_built_image(
    config: Config,
    settings: BuildSettings,
    trivy: TrivyTool,
    docker: DockerTool,
    results_dir: Path,
    environ: Mapping[str, str],
) -> StageReport:
    image = settings.image
    vuln_path = results_dir / "vulnerabilities.json"
    logger.info("Scanning image for vulnerabilities: %s", image)
    run = trivy.scan_image(image, vuln_path)
    if not run.ok(SCAN_OK_CODES) or not vuln_path.is_file():
        raise ToolExecutionError("trivy", f"Vulnerability scan failed with exit code: {run.returncode}")
    reports = [vuln_path]

    for label, scan, output in (
        ("Configuration", trivy.scan_config, results_dir / "config.json"),
        ("Secret", trivy.scan_fs_secrets, results_dir / "secrets.json"),
    ):
        target = settings.dockerfile if label == "Configuration" else settings.context
        run = scan(target, output)
        if not run.ok(SCAN_OK_CODES):
            logger.error("%s scan failed", label)
            raise ToolExecutionError(
                "trivy",
                f"{label} scan failed with exit code: {run.returncode}",
                details={"returncode": run.returncode, "stderr": run.stderr},
            )
        logger.info("%s scan completed", label)
        reports.append(output)

    payload = read_json(vuln_path)
    counts = summarize_trivy(payload).vulnerabilities
    findings = trivy_json_to_findings(payload, image=image)
    logger.info("Scan Results Summary: critical=%d high=%d", counts.critical, counts.high)

    result = evaluate_gate("build", {"critical": counts.critical, "high": counts.high},
                           build_thresholds(config))
    finish_gate(config, result, None, findings, commit_sha=settings.commit_sha)
    if result.passed:
        approved = approved_tag(image)
        if docker.tag(image, approved):
            logger.info("Tagged image as security-approved: %s", approved)
    else:
        logger.error("Image failed security gates. Build should not proceed to production.")

    reports.append(write_text(results_dir / "security-report.md",
                              _markdown_report(image, counts.critical, counts.high, findings)))
    return StageReport(
        gate=result,
        counts={**counts.model_dump(), "image": image},
        reports=reports,
        findings=findings,
        enforced=environ.get("CI", "") == "true",
    )


def push_built_image(docker: DockerTool, settings: BuildSettings) -> bool:
    """Push the built image and, when present, its security-approved tag.

    Returns False when pushing is disabled or no registry is set.

    Raises
    ------
    ToolExecutionError
        If login or the main push fails.
    """
    if not settings.push:
        logger.info("Image push disabled, skipping...")
        return False
    if not settings.registry:
        logger.warning("No registry URL provided, skipping push")
        return False

    image = settings.image
    logger.info("Pushing image to registry: %s", image)
    registry_login(docker, settings.registry, settings.username, settings.password)
    if not docker.push(image):
        raise ToolExecutionError("docker", f"Image push failed: {image}")
    logger.info("Image pushed successfully: %s", image)

    approved = approved_tag(image)
    if docker.image_exists(approved):
        if not docker.push(approved):
            raise ToolExecutionError("docker", f"Image push failed: {approved}")
        logger.info("Security-approved image pushed: %s", approved)
    return True


def run_docker_build(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    docker: Optional[DockerTool] = None,
    trivy: Optional[TrivyTool] = None,
    settings: Optional[BuildSettings] = None,
) -> StageReport:
    """Check prerequisites, lint the Dockerfile, build, scan, then optionally push."""
    environ = os.environ if environ is None else environ
    settings = settings or BuildSettings.from_env(environ, config.project.root)
    tools = config.tools
    docker = docker or DockerTool(executable=tools.docker, timeout_s=tools.timeout)
    trivy = trivy or TrivyTool(
        executable=tools.trivy,
        cache_dir=tools.trivy_cache_dir,
        scan_timeout=tools.trivy_timeout,
        timeout_s=tools.timeout,
    )

    check_build_prerequisites(docker, settings)
    if settings.security_scan and not trivy.is_installed():
        logger.warning("Trivy not found. Security scanning will be skipped.")
        settings.security_scan = False

    issues = validate_dockerfile(settings.dockerfile)
    settings.commit_sha = resolve_commit(settings)

    image = settings.image
    logger.info("Building %s from %s (context %s)", image, settings.dockerfile, settings.context)
    docker.build(image, settings.dockerfile, settings.context, labels={
        "build.date": now_iso(),
        "build.version": settings.image_tag,
        "build.vcs-ref": settings.commit_sha,
        "security.scanned": "pending",
    })
    logger.info("Docker image built successfully: %s", image)

    results_dir = stage_dir(config, REPORT_DIR)
    built = write_text(results_dir / "built-image-name.txt", f"{image}\n")
    if not settings.security_scan:
        logger.info("Security scanning disabled, skipping...")
        report = StageReport(gate=None, counts={"image": image, "dockerfile_issues": len(issues)},
                             reports=[built])
    else:
        report = scan_built_image(config, settings, trivy, docker, results_dir, environ)
        report.reports.insert(0, built)
        report.counts["dockerfile_issues"] = len(issues)

    if report.enforced and not report.passed:
        logger.error("Security scan failed, image will not be pushed")
        report.counts["pushed"] = False
    else:
        report.counts["pushed"] = push_built_image(docker, settings)
    return report


__all__ = [
    "BuildSettings",
    "build_thresholds",
    "check_build_prerequisites",
    "full_image_name",
    "push_built_image",
    "run_docker_build",
    "scan_built_image",
    "validate_dockerfile",
]
