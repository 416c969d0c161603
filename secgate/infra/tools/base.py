# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Base class for external CLI wrappers.

Every pipeline stage shells out to an external binary (trivy, snyk,
conftest, docker, kubectl, argocd, git). ExternalTool gives them one
synchronous runner with a timeout, captured output, a best-effort JSON
parse of stdout and an optional POSIX memory cap.

Examples
--------
Implement a wrapper:

    >>> class HelmTool(ExternalTool):
    ...     @property
    ...     def name(self) -> str:
    ...         return 'helm'
    >>> HelmTool().run(['version', '--short']).returncode
    0

Notes
-----
Resource limits are only enforced on POSIX systems.
"""
from __future__ import annotations

import json
import os
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Sequence, cast

from secgate.core.exceptions import ToolExecutionError
from secgate.core.logging_config import get_logger
from secgate.core.models import ToolRunResult

logger = get_logger(__name__)

_IS_POSIX = os.name == "posix"
if _IS_POSIX:
    import resource  # type: ignore[attr-defined]

TIMEOUT_RETURNCODE = 124


class ExternalTool(ABC):
    """Base class for all external tool wrappers.

    Parameters
    ----------
    executable : str, optional
        Binary name or path. Defaults to :attr:`name`.
    timeout_s : int, optional
        Process timeout in seconds. Default is DEFAULT_TIMEOUT_S.
    mem_mb : int, optional
        Memory limit in megabytes (POSIX only). Default is None (no limit).
    env : Dict[str, str], optional
        Additional environment variables.
    """

    #: default per-process time limit (seconds)
    DEFAULT_TIMEOUT_S: int = 1800
    #: default memory limit in MB (None to disable)
    DEFAULT_MEM_MB: Optional[int] = None

    def __init__(
        self,
        executable: Optional[str] = None,
        timeout_s: Optional[int] = None,
        mem_mb: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.executable = executable or self.name
        self.timeout_s = timeout_s or self.DEFAULT_TIMEOUT_S
        self.mem_mb = mem_mb if mem_mb is not None else self.DEFAULT_MEM_MB
        self.env = dict(os.environ)
        if env:
            self.env.update(env)

    @property
    @abstractmethod
    def name(self) -> str:
        """Lowercase tool name (e.g. 'trivy', 'kubectl')."""
        raise NotImplementedError

    def is_installed(self) -> bool:
        return shutil.which(self.executable) is not None

    def require_installed(self) -> None:
        if not self.is_installed():
            raise ToolExecutionError(self.name, f"'{self.executable}' is not installed or not on PATH")

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        timeout_s: Optional[int] = None,
    ) -> ToolRunResult:
        cmd = [self.executable, *[str(a) for a in args]]
        logger.debug("Running: %s", " ".join(cmd))
        run = self._run(cmd, cwd=cwd, input_text=input_text, timeout_s=timeout_s)
        logger.debug("%s exited with %d after %.1fs", self.name, run.returncode, run.duration_s)
        return run

    def run_checked(
        self,
        args: Sequence[str],
        accepted: Iterable[int] = (0,),
        what: Optional[str] = None,
        **kwargs: Any,
    ) -> ToolRunResult:
        """Run and raise ToolExecutionError unless the exit code is accepted."""
        run = self.run(args, **kwargs)
        if not run.ok(accepted):
            raise ToolExecutionError(
                self.name,
                f"{what or ' '.join(args[:2])} exited with code {run.returncode}",
                {"returncode": run.returncode, "stderr": run.stderr.strip()[-2000:]},
            )
        return run

    # ----- Utilities --------------------------------------------------------------

    def _preexec_limits(self) -> Optional[Any]:
        if not _IS_POSIX or not self.mem_mb:
            return None

        def _apply():
            bytes_limit = int(self.mem_mb) * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (bytes_limit, bytes_limit))
            resource.setrlimit(resource.RLIMIT_CORE, (0, 0))

        return _apply

    def _run(
        self,
        cmd: Sequence[str],
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        timeout_s: Optional[int] = None,
    ) -> ToolRunResult:
        timeout = timeout_s or self.timeout_s
        started = time.time()
        try:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                env=self.env,
                check=False,
                input=input_text,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout,
                preexec_fn=self._preexec_limits(),
            )
        except FileNotFoundError as e:
            raise ToolExecutionError(self.name, f"'{cmd[0]}' is not installed or not on PATH") from e
        except subprocess.TimeoutExpired as e:
            # Synthesize a result on timeout
            duration = time.time() - started
            stdout = e.stdout
            if isinstance(stdout, bytes):
                stdout = stdout.decode("utf-8", "ignore")
            stderr = e.stderr
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", "ignore")
            logger.error("%s timed out after %ss", self.name, timeout)
            return ToolRunResult(
                tool=self.name,
                cmd=list(cmd),
                cwd=os.path.abspath(cwd or os.getcwd()),
                returncode=TIMEOUT_RETURNCODE,
                duration_s=duration,
                stdout=stdout or "",
                stderr=(stderr or "") + f"\n[TIMEOUT after {timeout}s]",
                parsed_json=None,
            )
        duration = time.time() - started
        stdout = cast(Optional[str], proc.stdout) or ""
        stderr = cast(Optional[str], proc.stderr) or ""

        parsed = None
        # Best-effort JSON parse if it looks like JSON
        txt = stdout.strip()
        if txt.startswith("{") or txt.startswith("["):
            try:
                parsed = json.loads(txt)
            except ValueError:
                parsed = None

        return ToolRunResult(
            tool=self.name,
            cmd=list(cmd),
            cwd=os.path.abspath(cwd or os.getcwd()),
            returncode=proc.returncode,
            duration_s=duration,
            stdout=stdout,
            stderr=stderr,
            parsed_json=parsed,
        )
