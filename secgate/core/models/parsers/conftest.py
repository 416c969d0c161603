"""Parser for conftest ``--output json`` results.

Each entry describes one evaluated document:
``{filename, namespace, successes, failures, warnings}``. ``failures`` and
``warnings`` hold ``{"msg": ...}`` objects; bare strings are accepted too.

Counting is per result entry, not per message: an entry with three
failures counts once towards ``failures``.

Functions
---------
tally_conftest : Count failed, warned and clean result entries
conftest_messages : Flatten messages of one kind
conftest_to_findings : Policy violations as Finding rows
"""
from __future__ import annotations

from typing import Any, Dict, List, Tuple

from pydantic import BaseModel

from .._shared import as_list, coalesce_payload
from ..schema import Finding, Severity


class ConftestTally(BaseModel):
    failures: int = 0
    warnings: int = 0
    successes: int = 0

    @property
    def results(self) -> int:
        return self.failures + self.warnings + self.successes


def _entries(run: Any) -> List[Dict[str, Any]]:
    payload = coalesce_payload(run, "conftest")
    if isinstance(payload, dict):
        payload = [payload]
    return [e for e in as_list(payload) if isinstance(e, dict)]


def message_text(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("msg", ""))
    return str(item)


def tally_conftest(run: Any) -> ConftestTally:
    """
    An entry counts as a success only when it has neither failures nor
    warnings; an entry with both counts towards both.
    """
    tally = ConftestTally()
    for entry in _entries(run):
        has_failures = bool(as_list(entry.get("failures")))
        has_warnings = bool(as_list(entry.get("warnings")))
        if has_failures:
            tally.failures += 1
        if has_warnings:
            tally.warnings += 1
        if not has_failures and not has_warnings:
            tally.successes += 1
    return tally


def conftest_messages(run: Any, kind: str = "failures") -> List[Tuple[str, str]]:
    """Return ``(filename, message)`` pairs for ``kind`` (failures or warnings)."""
    out: List[Tuple[str, str]] = []
    for entry in _entries(run):
        for item in as_list(entry.get(kind)):
            out.append((entry.get("filename", ""), message_text(item)))
    return out


def conftest_to_findings(run: Any) -> List[Finding]:
    findings: List[Finding] = []
    for filename, msg in conftest_messages(run, "failures"):
        findings.append(Finding(
            scanner="conftest",
            category="sast",
            identifier=f"{filename.replace('/', '_')}-{msg.replace(' ', '_')}",
            title="Policy Violation",
            description=f"Policy violation in {filename}: {msg}",
            severity=Severity.HIGH,
            file_path=filename,
            start_line=1,
            end_line=1,
            references=[msg],
        ))
    return findings


__all__ = [
    "ConftestTally",
    "tally_conftest",
    "conftest_messages",
    "conftest_to_findings",
    "message_text",
]
