"""Conftest (OPA) CLI wrapper for Rego policy directories.

Used when ``policy.engine`` is ``conftest``; the builtin evaluator in
``secgate.core.policy`` needs no external binary.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Union

from secgate.core.exceptions import FileSystemError
from secgate.core.models import ToolRunResult

from .base import ExternalTool


class ConftestTool(ExternalTool):
    @property
    def name(self) -> str:
        return "conftest"

    def __init__(self, *, policy_dir: Union[str, Path] = "policies", **kw: Any) -> None:
        super().__init__(**kw)
        self.policy_dir = Path(policy_dir)

    def policy_files(self) -> List[Path]:
        """Return every ``.rego`` file; a missing directory or none found is fatal."""
        if not self.policy_dir.is_dir():
            raise FileSystemError(str(self.policy_dir), "Policies directory not found")
        files = sorted(self.policy_dir.rglob("*.rego"))
        if not files:
            raise FileSystemError(str(self.policy_dir), "No policy files (.rego) found")
        return files

    def verify(self) -> ToolRunResult:
        return self.run(["verify", "--policy", str(self.policy_dir)])

    def test(self, manifest: Union[str, Path]) -> ToolRunResult:
        """Exit code 1 means violations were found; the JSON is still on stdout."""
        return self.run([
            "test",
            "--policy", str(self.policy_dir),
            "--output", "json",
            "--all-namespaces",
            str(manifest),
        ])


__all__ = ["ConftestTool"]
