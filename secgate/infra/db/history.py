"""Gate history persistence.

Functions
---------
save_gate_run : Store a GateResult and its findings
list_gate_runs : Most recent gate runs, newest first
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select

from secgate.core.logging_config import get_logger
from secgate.core.models.orm import FindingRecord, ScanMetadata
from secgate.core.models.schema import Finding, GateResult

from .connection import get_session

logger = get_logger(__name__)


def save_gate_run(
    db_path: str,
    result: GateResult,
    findings: Sequence[Finding] = (),
    *,
    project: Optional[str] = None,
    commit_sha: Optional[str] = None,
    environment: Optional[str] = None,
) -> int:
    """Persist one gate evaluation; returns the new ScanMetadata id."""
    with get_session(db_path) as session:
        scan = ScanMetadata(
            gate=result.gate,
            project=project,
            commit_sha=commit_sha,
            environment=environment,
            scan_timestamp=result.timestamp,
            passed=result.passed,
            observed=result.observed(),
            thresholds=result.thresholds(),
        )
        scan.findings = [
            FindingRecord(
                scanner=f.scanner,
                category=f.category,
                identifier=f.identifier,
                title=f.title,
                severity=f.severity.value,
                file_path=f.file_path,
                package=f.package,
                version=f.version,
            )
            for f in findings
        ]
        session.add(scan)
        session.flush()
        scan_id = scan.id
    logger.debug("Recorded %s gate run #%s with %d finding(s)", result.gate, scan_id, len(findings))
    return scan_id


def list_gate_runs(
    db_path: str,
    *,
    gate: Optional[str] = None,
    project: Optional[str] = None,
    limit: int = 20,
) -> List[Dict[str, Any]]:
    with get_session(db_path) as session:
        stmt = select(ScanMetadata).order_by(ScanMetadata.id.desc()).limit(limit)
        if gate:
            stmt = stmt.where(ScanMetadata.gate == gate)
        if project:
            stmt = stmt.where(ScanMetadata.project == project)
        rows = session.execute(stmt).scalars().all()
        return [
            {
                "id": row.id,
                "gate": row.gate,
                "project": row.project,
                "commit_sha": row.commit_sha,
                "environment": row.environment,
                "scan_timestamp": row.scan_timestamp,
                "passed": row.passed,
                "observed": row.observed or {},
                "thresholds": row.thresholds or {},
                "findings": len(row.findings),
            }
            for row in rows
        ]


__all__ = ["save_gate_run", "list_gate_runs"]
