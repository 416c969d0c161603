"""Trivy container scanner wrapper.

Classes
-------
TrivyTool : Runs ``trivy image`` scans, DB updates and SARIF conversion

Examples
--------
>>> tool = TrivyTool(cache_dir="/tmp/.trivy-cache")
>>> tool.build_image_cmd("app:1.0", "out.json")[:4]
['image', '--format', 'json', '--output']

See Also
--------
secgate.core.models.parsers.trivy : Result parser
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from secgate.core.models import ToolRunResult

from .base import ExternalTool

# trivy exits 1 when it found something and --exit-code 1 is set
SCAN_OK_CODES = (0, 1)


class TrivyTool(ExternalTool):
    """
    Wrapper for ``trivy image``.

    Parameters
    ----------
    cache_dir : str, optional
        Value for ``--cache-dir``.
    scan_timeout : str
        Trivy's own ``--timeout`` value for vulnerability scans.
    """

    @property
    def name(self) -> str:
        return "trivy"

    def __init__(
        self,
        *,
        cache_dir: Optional[str] = None,
        scan_timeout: str = "10m",
        **kw: Any,
    ) -> None:
        super().__init__(**kw)
        self.cache_dir = cache_dir
        self.scan_timeout = scan_timeout
        self.env.update({
            "TRIVY_NO_PROGRESS": "true",
            "TRIVY_EXIT_CODE": "0",
        })
        if cache_dir:
            self.env["TRIVY_CACHE_DIR"] = cache_dir

    def build_image_cmd(
        self,
        image: str,
        output: Union[str, Path],
        *,
        scanners: Optional[str] = None,
        severities: Sequence[str] = ("HIGH", "CRITICAL"),
        timeout: Optional[str] = None,
    ) -> List[str]:
        """
        Build ``trivy image`` arguments.

        Without `scanners` this is the vulnerability scan with severity and
        vuln-type filters; with `scanners` ('secret', 'config') only the
        selected scanner runs.
        """
        args: List[str] = ["image", "--format", "json", "--output", str(output)]
        if scanners:
            args += ["--scanners", scanners, "--timeout", timeout or "5m"]
        else:
            args += [
                "--severity", ",".join(severities),
                "--vuln-type", "os,library",
                "--ignore-unfixed",
                "--timeout", timeout or self.scan_timeout,
            ]
        if self.cache_dir:
            args += ["--cache-dir", self.cache_dir]
        args.append(image)
        return args

    def scan_image(
        self,
        image: str,
        output: Union[str, Path],
        **kw: Any,
    ) -> ToolRunResult:
        return self.run(self.build_image_cmd(image, output, **kw))

    def scan_config(self, target: Union[str, Path], output: Union[str, Path]) -> ToolRunResult:
        """``trivy config`` over a Dockerfile or directory."""
        return self.run(["config", "--format", "json", "--output", str(output), str(target)])

    def scan_fs_secrets(self, target: Union[str, Path], output: Union[str, Path]) -> ToolRunResult:
        return self.run([
            "fs", "--format", "json", "--output", str(output), "--scanners", "secret", str(target),
        ])

    def download_db(self) -> bool:
        """Refresh the vulnerability DB; False means the cached copy is used."""
        return self.run(["image", "--download-db-only"]).ok()

    def download_java_db(self) -> bool:
        return self.run(["image", "--download-java-db-only"]).ok()

    def convert_sarif(self, report: Union[str, Path], output: Union[str, Path]) -> bool:
        return self.run(["convert", "--format", "sarif", "--output", str(output), str(report)]).ok()

    def version(self) -> str:
        """Return the Trivy version string or 'unknown'."""
        if not self.is_installed():
            return "unknown"
        run = self.run(["--version"])
        if not run.ok():
            return "unknown"
        # "Version: 0.50.1"
        first = run.stdout.strip().splitlines()[0] if run.stdout.strip() else ""
        parts = first.split()
        return parts[1] if len(parts) > 1 else "unknown"


__all__ = ["TrivyTool", "SCAN_OK_CODES"]
