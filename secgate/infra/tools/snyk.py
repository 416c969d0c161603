"""Snyk Open Source (SCA) CLI wrapper.

Classes
-------
SnykTool : ``snyk auth``, ``snyk test`` and ``snyk monitor``

Examples
--------
>>> tool = SnykTool()
>>> tool.build_test_cmd()
['test', '--json', '--severity-threshold=high', '--all-projects', '--detection-depth=5', '--exclude=test,spec,docs']

See Also
--------
secgate.core.models.parsers.snyk : Result parser
"""
from __future__ import annotations

from typing import Any, List, Optional

from secgate.core.models import ToolRunResult

from .base import ExternalTool

#: ``snyk test`` exit codes: 0 clean, 1 issues found, anything else is an error
SNYK_CLEAN = 0
SNYK_ISSUES = 1


class SnykTool(ExternalTool):
    """
    Wrapper for the Snyk CLI dependency scan.

    Parameters
    ----------
    severity_threshold : str
        Minimum severity reported by ``snyk test``.
    detection_depth : int
        How deep ``--all-projects`` searches for manifests.
    exclude : str
        Comma separated directory names skipped by ``--all-projects``.
    """

    @property
    def name(self) -> str:
        return "snyk"

    def __init__(
        self,
        *,
        severity_threshold: str = "high",
        detection_depth: int = 5,
        exclude: str = "test,spec,docs",
        org: Optional[str] = None,
        **kw: Any,
    ) -> None:
        super().__init__(**kw)
        self.severity_threshold = severity_threshold
        self.detection_depth = detection_depth
        self.exclude = exclude
        self.org = org

    def authenticate(self, token: str) -> bool:
        return self.run(["auth", token]).ok()

    def build_test_cmd(self) -> List[str]:
        cmd = [
            "test",
            "--json",
            f"--severity-threshold={self.severity_threshold}",
            "--all-projects",
            f"--detection-depth={self.detection_depth}",
            f"--exclude={self.exclude}",
        ]
        if self.org:
            cmd.append(f"--org={self.org}")
        return cmd

    def test(self, cwd: str) -> ToolRunResult:
        return self.run(self.build_test_cmd(), cwd=cwd)

    def license_test(self, cwd: Optional[str] = None) -> ToolRunResult:
        return self.run(["test", "--json", "--print-deps", "--dev"], cwd=cwd)

    def monitor(self, project_name: str, cwd: Optional[str] = None) -> bool:
        return self.run(
            [
                "monitor",
                "--all-projects",
                f"--detection-depth={self.detection_depth}",
                f"--project-name={project_name}",
            ],
            cwd=cwd,
        ).ok()


__all__ = ["SnykTool", "SNYK_CLEAN", "SNYK_ISSUES"]
