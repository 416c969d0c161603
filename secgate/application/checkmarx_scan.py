# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Static application security testing stage (Checkmarx REST API).

Pipeline
--------
1. Validate CI variables, authenticate (password grant)
2. Get or create the project named after ``CI_PROJECT_NAME``
3. Zip and upload the source tree, start an incremental scan
4. Poll until ``Finished`` (``Failed``/``Canceled`` or timeout is fatal)
5. Statistics and, best effort, detailed results
6. Gate: critical and high
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import List, Mapping, Optional

from secgate.config import Config
from secgate.core.gates import evaluate_gate
from secgate.core.logging_config import get_logger
from secgate.core.models.parsers import (
    checkmarx_results_to_findings,
    checkmarx_statistics_to_counts,
)
from secgate.core.models.schema import Threshold
from secgate.infra.clients import CheckmarxClient, archive_source
from secgate.infra.reports import gitlab_report, write_env, write_json

from .common import StageReport, finish_gate, stage_dir
from .environment import checkmarx_environment

logger = get_logger(__name__)

REPORT_DIR = "sast"
ENV_FILE = "checkmarx-results.env"


def checkmarx_thresholds(config: Config) -> List[Threshold]:
    gates = config.gates
    return [
        Threshold(metric="critical", maximum=gates.checkmarx_critical,
                  label="critical SAST vulnerabilities"),
        Threshold(metric="high", maximum=gates.checkmarx_high,
                  label="high SAST vulnerabilities"),
    ]


def build_client(config: Config, env: Mapping[str, str]) -> CheckmarxClient:
    cx = config.checkmarx
    return CheckmarxClient(
        cx.url or env["CHECKMARX_URL"],
        env["CHECKMARX_USERNAME"],
        env["CHECKMARX_PASSWORD"],
        timeout=cx.request_timeout,
        verify=cx.verify_ssl,
    )


def run_checkmarx_scan(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    client: Optional[CheckmarxClient] = None,
    sleep=None,
) -> StageReport:
    environ = os.environ if environ is None else environ
    env = checkmarx_environment(environ, url=config.checkmarx.url)
    project, commit = env["CI_PROJECT_NAME"], env["CI_COMMIT_SHA"]
    cx = config.checkmarx

    client = client or build_client(config, env)
    results_dir = stage_dir(config, REPORT_DIR)
    logger.info("Starting Checkmarx SAST scan for %s", project)

    client.authenticate()
    project_id = client.get_or_create_project(project, team_id=cx.team_id)

    with tempfile.TemporaryDirectory(prefix="secgate-cx-") as tmp:
        archive = archive_source(
            config.project.root, Path(tmp) / "source.zip", config.project.exclude_patterns,
        )
        client.upload_source(project_id, archive)

    scan_id = client.start_scan(
        project_id,
        comment=f"Automated scan from CI pipeline - Commit: {commit}",
        incremental=cx.incremental,
    )
    wait_kw = {"poll_interval": cx.poll_interval, "timeout": cx.scan_timeout}
    if sleep is not None:
        wait_kw["sleep"] = sleep
    client.wait_for_scan(scan_id, **wait_kw)
    logger.info("SAST scan completed successfully")

    statistics = client.results_statistics(scan_id)
    reports = [write_json(results_dir / "checkmarx-statistics.json", statistics)]
    counts = checkmarx_statistics_to_counts(statistics)
    logger.info("Vulnerability Summary: critical=%d high=%d medium=%d low=%d info=%d",
                counts.critical, counts.high, counts.medium, counts.low, counts.info)

    reports.append(write_env(results_dir / ENV_FILE, {
        "CHECKMARX_CRITICAL_COUNT": counts.critical,
        "CHECKMARX_HIGH_COUNT": counts.high,
        "CHECKMARX_MEDIUM_COUNT": counts.medium,
        "CHECKMARX_LOW_COUNT": counts.low,
        "CHECKMARX_INFO_COUNT": counts.info,
    }))

    findings = []
    detailed = client.results(scan_id)
    if detailed is not None:
        reports.append(write_json(results_dir / "checkmarx-detailed-results.json", detailed))
        findings = checkmarx_results_to_findings(detailed)
        reports.append(write_json(results_dir / "checkmarx-gitlab-sast.json", gitlab_report(findings)))

    result = evaluate_gate("checkmarx", {
        "critical": counts.critical,
        "high": counts.high,
    }, checkmarx_thresholds(config))
    finish_gate(config, result, None, findings, project=project, commit_sha=commit)

    return StageReport(
        gate=result,
        counts={**counts.model_dump(), "scan_id": scan_id, "project_id": project_id},
        reports=reports,
        findings=findings,
    )


__all__ = ["run_checkmarx_scan", "checkmarx_thresholds", "build_client", "REPORT_DIR"]
