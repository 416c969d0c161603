"""Plumbing shared by the scan stages: report directories, gate finishing
and optional history recording."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from secgate.config import Config
from secgate.core.gates import failure_payload, log_gate
from secgate.core.logging_config import get_logger
from secgate.core.models.schema import Finding, GateResult
from secgate.infra.db import save_gate_run
from secgate.infra.reports import ensure_dir, write_json

logger = get_logger(__name__)


@dataclass
class StageReport:
    """What a stage produced: the gate outcome, counts and written files."""

    gate: Optional[GateResult]
    counts: Dict[str, Any] = field(default_factory=dict)
    reports: List[Path] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    enforced: bool = True

    @property
    def passed(self) -> bool:
        return self.gate is None or self.gate.passed


def stage_dir(config: Config, name: str) -> Path:
    return ensure_dir(Path(config.project.results_dir) / name)


def finish_gate(
    config: Config,
    result: GateResult,
    failure_path: Optional[Path],
    findings: Sequence[Finding] = (),
    *,
    project: Optional[str] = None,
    commit_sha: Optional[str] = None,
    environment: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[Path]:
    """Log the gate, write the failure file when it failed and record history.

    Returns the failure file path when one was written.
    """
    log_gate(result)
    written = None
    if not result.passed and failure_path is not None:
        written = write_json(failure_path, failure_payload(result, extra))
    if config.database.enabled:
        save_gate_run(
            config.database.path,
            result,
            findings,
            project=project,
            commit_sha=commit_sha,
            environment=environment,
        )
    return written


__all__ = ["StageReport", "stage_dir", "finish_gate"]
