"""kubectl, argocd and git wrappers for the GitOps workflow.

``KUBECTL_CMD`` and ``ARGOCD_CMD`` override the binaries, matching the
variables used by existing pipeline jobs.
"""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Sequence

from secgate.core.models import ToolRunResult

from .base import ExternalTool


class KubectlTool(ExternalTool):
    DEFAULT_TIMEOUT_S = 600

    def __init__(self, executable: Optional[str] = None, **kw: Any) -> None:
        super().__init__(executable=os.environ.get("KUBECTL_CMD") or executable, **kw)

    @property
    def name(self) -> str:
        return "kubectl"

    def cluster_reachable(self) -> bool:
        return self.run(["cluster-info"], timeout_s=60).ok()

    def get_json(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the object as a dict, or None when it cannot be read."""
        args = ["get", kind, name, "-o", "json"]
        if namespace:
            args += ["-n", namespace]
        run = self.run(args)
        if run.ok() and isinstance(run.parsed_json, dict):
            return run.parsed_json
        return None

    def apply_stdin(self, manifest: str) -> ToolRunResult:
        return self.run_checked(["apply", "-f", "-"], input_text=manifest, what="kubectl apply")

    def ensure_namespace(self, namespace: str, labels: Optional[Dict[str, str]] = None) -> None:
        """Create the namespace idempotently and apply labels with --overwrite."""
        rendered = self.run_checked(
            ["create", "namespace", namespace, "--dry-run=client", "-o", "yaml"],
            what="kubectl create namespace",
        )
        self.apply_stdin(rendered.stdout)
        if labels:
            pairs = [f"{k}={v}" for k, v in labels.items()]
            self.run_checked(["label", "namespace", namespace, *pairs, "--overwrite"],
                             what="kubectl label namespace")

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> ToolRunResult:
        args = ["delete", kind, name, "--ignore-not-found=true"]
        if namespace:
            args += ["-n", namespace]
        return self.run_checked(args, what=f"kubectl delete {kind}")


class ArgoCDTool(ExternalTool):
    DEFAULT_TIMEOUT_S = 600

    def __init__(self, executable: Optional[str] = None, **kw: Any) -> None:
        super().__init__(executable=os.environ.get("ARGOCD_CMD") or executable, **kw)

    @property
    def name(self) -> str:
        return "argocd"

    def sync(self, app: str) -> bool:
        return self.run(["app", "sync", app]).ok()

    def rollback(self, app: str, revision: str) -> ToolRunResult:
        return self.run_checked(["app", "rollback", app, revision], what="argocd app rollback")

    def sync_status(self, app: str) -> str:
        run = self.run(["app", "get", app, "-o", "json"])
        payload = run.parsed_json if run.ok() else None
        if isinstance(payload, dict):
            status = ((payload.get("status") or {}).get("sync") or {}).get("status")
            if status:
                return str(status)
        return "Unknown"

    def list_apps(self, project: str) -> List[str]:
        run = self.run(["app", "list", "-p", project, "-o", "name"])
        if not run.ok():
            return []
        return [line.strip() for line in run.stdout.splitlines() if line.strip()]


class GitTool(ExternalTool):
    DEFAULT_TIMEOUT_S = 300

    @property
    def name(self) -> str:
        return "git"

    def __init__(self, *, repo_root: str = ".", **kw: Any) -> None:
        super().__init__(**kw)
        self.repo_root = repo_root

    def _git(self, args: Sequence[str], what: str) -> ToolRunResult:
        return self.run_checked(args, cwd=self.repo_root, what=what)

    def add(self, *paths: str) -> None:
        self._git(["add", *paths], "git add")

    def commit(self, message: str) -> None:
        self._git(["commit", "-m", message], "git commit")

    def push(self, remote: str = "origin", branch: str = "main") -> None:
        self._git(["push", remote, branch], "git push")

    def checkout_paths(self, revision: str, *paths: str) -> None:
        self._git(["checkout", revision, "--", *paths], "git checkout")


__all__ = ["KubectlTool", "ArgoCDTool", "GitTool"]
