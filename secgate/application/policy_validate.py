# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Kubernetes manifest policy validation stage.

Manifests are evaluated either by the builtin rule packages
(``policy.engine = builtin``) or by shelling out to ``conftest`` against a
directory of Rego policies. Both paths produce conftest-shaped results, so
counting and reporting are shared.

Pipeline
--------
1. Validate CI variables
2. Discover manifests under ``policy.manifests_dir`` plus root-level YAML
3. Evaluate each manifest file (``test-<name>.json`` per file)
4. Summary, detailed, GitLab SAST, compliance and HTML reports
5. Gate: violations block, warnings only warn
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tqdm import tqdm

from secgate.config import Config
from secgate.core.exceptions import FileSystemError, ParserError, ToolExecutionError
from secgate.core.gates import evaluate_gate
from secgate.core.logging_config import get_logger
from secgate.core.models._shared import now_iso
from secgate.core.models.parsers import conftest_messages, conftest_to_findings, tally_conftest
from secgate.core.models.schema import Threshold
from secgate.core.policy import PolicyEngine, build_engine
from secgate.infra.reports import gitlab_report, render_html_report, write_env, write_json, write_text
from secgate.infra.tools import ConftestTool

from .common import StageReport, finish_gate, stage_dir
from .environment import policy_environment

logger = get_logger(__name__)

REPORT_DIR = "policy-validation"
ENV_FILE = "conftest-results.env"
MANIFEST_SUFFIXES = (".yaml", ".yml")

COMPLIANCE_FRAMEWORKS: Dict[str, Dict[str, Any]] = {
    "CIS_Kubernetes_Benchmark": {
        "version": "1.7.0",
        "controls_evaluated": [
            "4.2.1 - Minimize the admission of privileged containers",
            "4.2.2 - Minimize the admission of containers wishing to share the host process ID namespace",
            "4.2.3 - Minimize the admission of containers wishing to share the host IPC namespace",
            "4.2.4 - Minimize the admission of containers wishing to share the host network namespace",
            "4.2.5 - Minimize the admission of containers with allowPrivilegeEscalation",
            "4.2.6 - Minimize the admission of root containers",
            "5.1.1 - Ensure that the cluster-admin role is only used where required",
            "5.1.3 - Minimize wildcard use in Roles and ClusterRoles",
            "5.7.1 - Create administrative boundaries between resources using namespaces",
        ],
    },
    "NIST_800_53": {
        "version": "Rev 5",
        "controls_evaluated": [
            "AC-2 - Account Management",
            "AC-3 - Access Enforcement",
            "AC-6 - Least Privilege",
            "CM-6 - Configuration Settings",
            "SC-2 - Application Partitioning",
            "SC-3 - Security Function Isolation",
            "SI-3 - Malicious Code Protection",
        ],
    },
    "SOC2_Type_II": {
        "trust_criteria": [
            "CC6.1 - Logical and Physical Access Controls",
            "CC6.2 - Authorization",
            "CC6.3 - Entity Access",
            "CC6.7 - Data Transmission",
            "CC7.1 - System Monitoring",
        ],
    },
}


def policy_thresholds(config: Config) -> List[Threshold]:
    gates = config.gates
    return [
        Threshold(metric="violations", maximum=gates.policy_violations,
                  label="policy violations"),
        Threshold(metric="warnings", maximum=gates.policy_warnings, blocking=False,
                  label="policy warnings"),
    ]


def _looks_like_manifest(path: Path) -> bool:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise FileSystemError(str(path), f"Cannot read file: {e}") from e
    return "apiVersion" in text or "kind" in text


def discover_manifests(root: Path, manifests_dir: str) -> List[Path]:
    """
    Return the manifest files to validate.

    Every ``*.yaml``/``*.yml`` under `manifests_dir` (hidden files skipped),
    then root-level YAML files that mention ``apiVersion`` or ``kind``.

    Raises
    ------
    FileSystemError
        When nothing is found.
    """
    root = Path(root)
    base = root / manifests_dir
    found: List[Path] = []
    if base.is_dir():
        for path in sorted(base.rglob("*")):
            if path.is_file() and path.suffix in MANIFEST_SUFFIXES and not path.name.startswith("."):
                found.append(path)
    for path in sorted(root.iterdir()):
        if path.is_file() and path.suffix in MANIFEST_SUFFIXES and path not in found:
            if _looks_like_manifest(path):
                found.append(path)
    if not found:
        raise FileSystemError(str(root), "No Kubernetes manifest files found")
    logger.info("Found %d manifest files", len(found))
    return found


def result_name(manifest: Path, root: Path) -> str:
    """``test-<relative path with / replaced by _>.json``."""
    try:
        rel = manifest.relative_to(root).as_posix()
    except ValueError:
        rel = manifest.name
    return f"test-{rel.replace('/', '_')}.json"


class BuiltinEvaluator:
    """Evaluate manifest files with the in-process rule packages."""

    def __init__(self, engine: PolicyEngine) -> None:
        self.engine = engine

    def prepare(self) -> None:
        logger.info("Using builtin policy packages: %s",
                    ", ".join(p.name for p in self.engine.packages))

    def evaluate(self, manifest: Path) -> List[Dict[str, Any]]:
        return [d.to_conftest() for d in self.engine.evaluate_file(manifest)]


class ConftestEvaluator:
    """Evaluate manifest files with ``conftest`` and a Rego policy directory."""

    def __init__(self, tool: ConftestTool, results_dir: Path) -> None:
        self.tool = tool
        self.results_dir = results_dir

    def prepare(self) -> None:
        self.tool.require_installed()
        files = self.tool.policy_files()
        logger.info("Found %d policy files", len(files))
        run = self.tool.verify()
        write_text(self.results_dir / "policy-verification.txt", run.stdout + run.stderr)
        if not run.ok():
            raise ToolExecutionError("conftest", "Policy syntax validation failed",
                                     details={"stderr": run.stderr.strip()})
        logger.info("All policies passed syntax validation")

    def evaluate(self, manifest: Path) -> List[Dict[str, Any]]:
        run = self.tool.test(manifest)
        payload = run.parsed_json
        if not isinstance(payload, list):
            raise ParserError("conftest", f"Unexpected conftest output for {manifest} "
                                          f"(exit code: {run.returncode})")
        return payload


def detailed_report(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    tally = tally_conftest(results)
    return {
        "summary": {
            "total_resources": len(results),
            "failed_resources": tally.failures,
            "warning_resources": tally.warnings,
            "passed_resources": tally.successes,
        },
        "policy_violations": [
            {"filename": r.get("filename"), "violations": r.get("failures")}
            for r in results if r.get("failures")
        ],
        "policy_warnings": [
            {"filename": r.get("filename"), "warnings": r.get("warnings")}
            for r in results if r.get("warnings")
        ],
        "compliance_status": {
            "security_compliant": tally.failures == 0,
            "has_warnings": tally.warnings > 0,
        },
    }


def compliance_report(project: str, environment: str, failures: int, warnings: int) -> Dict[str, Any]:
    frameworks = {
        name: {**framework, "compliance_status": "evaluated"}
        for name, framework in COMPLIANCE_FRAMEWORKS.items()
    }
    return {
        "compliance_frameworks": frameworks,
        "evaluation_timestamp": now_iso(),
        "project": project,
        "environment": environment,
        "total_violations": failures,
        "total_warnings": warnings,
    }


def run_policy_validation(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    conftest: Optional[ConftestTool] = None,
) -> StageReport:
    environ = os.environ if environ is None else environ
    env = policy_environment(environ)
    project, commit = env["CI_PROJECT_NAME"], env["CI_COMMIT_SHA"]
    environment = env["CI_ENVIRONMENT_SLUG"]
    policy = config.policy
    root = Path(config.project.root)
    results_dir = stage_dir(config, REPORT_DIR)

    if policy.engine == "conftest":
        tool = conftest or ConftestTool(
            executable=config.tools.conftest,
            policy_dir=root / policy.policies_dir,
            timeout_s=config.tools.timeout,
        )
        evaluator = ConftestEvaluator(tool, results_dir)
    else:
        evaluator = BuiltinEvaluator(build_engine(
            policy.packages, policy.trusted_registries, policy.min_replicas,
        ))
    evaluator.prepare()

    manifests = discover_manifests(root, policy.manifests_dir)
    reports = [write_text(results_dir / "discovered-manifests.txt",
                          "".join(f"{m.as_posix()}\n" for m in manifests))]

    combined: List[Dict[str, Any]] = []
    passed_manifests = failed_manifests = total_failures = total_warnings = 0
    for manifest in tqdm(manifests, desc="policy", unit="file", disable=None):
        results = evaluator.evaluate(manifest)
        write_json(results_dir / result_name(manifest, root), results)
        tally = tally_conftest(results)
        logger.info("%s: %d passed, %d failed, %d warnings",
                    manifest.as_posix(), tally.successes, tally.failures, tally.warnings)
        for filename, msg in conftest_messages(results, "failures"):
            logger.warning("  FAIL %s: %s", filename, msg)
        for filename, msg in conftest_messages(results, "warnings"):
            logger.info("  WARN %s: %s", filename, msg)
        if tally.failures:
            failed_manifests += 1
        else:
            passed_manifests += 1
        total_failures += tally.failures
        total_warnings += tally.warnings
        combined.extend(results)

    logger.info("Policy Validation Summary: manifests=%d passed=%d failed=%d violations=%d warnings=%d",
                len(manifests), passed_manifests, failed_manifests, total_failures, total_warnings)

    reports.append(write_json(results_dir / "combined-results.json", combined))
    reports.append(write_json(results_dir / "validation-summary.json", {
        "total_manifests": len(manifests),
        "passed_manifests": passed_manifests,
        "failed_manifests": failed_manifests,
        "total_failures": total_failures,
        "total_warnings": total_warnings,
        "validation_timestamp": now_iso(),
        "project": project,
        "commit": commit,
        "environment": environment,
    }))
    reports.append(write_env(results_dir / ENV_FILE, {
        "CONFTEST_TOTAL_MANIFESTS": len(manifests),
        "CONFTEST_PASSED_MANIFESTS": passed_manifests,
        "CONFTEST_FAILED_MANIFESTS": failed_manifests,
        "CONFTEST_TOTAL_FAILURES": total_failures,
        "CONFTEST_TOTAL_WARNINGS": total_warnings,
    }))
    reports.append(write_json(results_dir / "policy-detailed-report.json", detailed_report(combined)))

    findings = conftest_to_findings(combined)
    reports.append(write_json(results_dir / "conftest-gitlab-sast.json", gitlab_report(findings)))
    reports.append(write_json(results_dir / "compliance-report.json",
                              compliance_report(project, environment, total_failures, total_warnings)))
    reports.append(write_text(results_dir / "policy-validation-report.html", render_html_report(
        title=f"Policy Validation Report - {project}",
        heading="Kubernetes Policy Validation Report",
        metadata={
            "Project": project,
            "Environment": environment,
            "Validation Date": now_iso(),
            "Commit": commit,
        },
        summary=[
            ("Total Manifests", len(manifests), ""),
            ("Passed", passed_manifests, "passed"),
            ("Failed", failed_manifests, "failed"),
            ("Policy Violations", total_failures, "failed"),
            ("Warnings", total_warnings, "warning"),
        ],
        sections={
            "Compliance Frameworks": [
                "CIS Kubernetes Benchmark 1.7.0",
                "NIST 800-53 Rev 5",
                "SOC2 Type II",
            ],
            "Policy Violations": [f"{f}: {m}" for f, m in conftest_messages(combined, "failures")],
        },
        footer="Generated by OPA Conftest Policy Validator - SecGate",
    )))

    result = evaluate_gate("policy", {
        "violations": total_failures,
        "warnings": total_warnings,
    }, policy_thresholds(config))
    failure = finish_gate(
        config, result, results_dir / "policy-gate-failure.json", findings,
        project=project, commit_sha=commit, environment=environment,
        extra={"remediation": "Review and fix policy violations before deployment"},
    )
    if failure:
        reports.append(failure)

    return StageReport(
        gate=result,
        counts={
            "manifests": len(manifests),
            "passed": passed_manifests,
            "failed": failed_manifests,
            "violations": total_failures,
            "warnings": total_warnings,
        },
        reports=reports,
        findings=findings,
    )


__all__ = [
    "run_policy_validation",
    "discover_manifests",
    "policy_thresholds",
    "BuiltinEvaluator",
    "ConftestEvaluator",
    "detailed_report",
    "compliance_report",
    "COMPLIANCE_FRAMEWORKS",
]
