from __future__ import annotations

"""Common data models for tool execution results.

Classes
-------
ToolRunResult : Standardized tool execution result

Examples
--------
>>> result = ToolRunResult(
...     tool="trivy",
...     cmd=["trivy", "image", "app:1.0"],
...     cwd="/project",
...     returncode=0,
...     duration_s=1.5,
...     stdout="",
...     stderr="",
... )
>>> result.ok()
True
"""

from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel


class ToolRunResult(BaseModel):
    tool: str
    cmd: List[str]
    cwd: str
    returncode: int
    duration_s: float
    stdout: str
    stderr: str
    parsed_json: Optional[Any] = None

    def ok(self, accepted: Iterable[int] = (0,)) -> bool:
        """True when the exit code is in the accepted set."""
        return self.returncode in set(accepted)

    @property
    def timed_out(self) -> bool:
        return self.returncode == 124

    def to_dict(self) -> Dict[str, Any]:
        payload = self.model_dump()
        payload["stdout_bytes"] = len(self.stdout.encode("utf-8", "ignore"))
        payload["stderr_bytes"] = len(self.stderr.encode("utf-8", "ignore"))
        return payload
