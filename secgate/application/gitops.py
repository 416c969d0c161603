# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""GitOps workflow: promotion, rollback, health and preview environments.

Git is the source of truth. Promotion and rollback edit kustomize overlays
and push; ArgoCD reconciles. The argocd CLI is optional everywhere except
``sync-all``, which degrades to a log message without it.

Classes
-------
GitOpsWorkflow : Operations bound to one configuration and tool set
DeploymentHealth : Result of a health check

Examples
--------
>>> flow = GitOpsWorkflow(load_config())
>>> flow.check_prereqs()
>>> flow.promote("secure-app", "staging", "production", "v1.2.3")
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from secgate.config import Config
from secgate.core.exceptions import FileSystemError, ParserError, ToolExecutionError
from secgate.core.logging_config import get_logger
from secgate.infra.tools import ArgoCDTool, GitTool, KubectlTool

logger = get_logger(__name__)


@dataclass
class DeploymentHealth:
    app: str
    namespace: str
    available: bool
    ready_replicas: int
    replicas: int
    sync_status: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.available and self.replicas != 0 and self.ready_replicas == self.replicas


def set_image_tag(kustomization: Dict[str, Any], app: str, tag: str) -> Dict[str, Any]:
    """Set ``newTag`` on every ``images`` entry whose name ends with `app`.

    An entry is appended when none matches.
    """
    images = kustomization.get("images")
    if not isinstance(images, list):
        images = []
        kustomization["images"] = images
    matched = False
    for entry in images:
        if isinstance(entry, dict) and str(entry.get("name", "")).endswith(app):
            entry["newTag"] = tag
            matched = True
    if not matched:
        images.append({"name": app, "newTag": tag})
    return kustomization


def preview_application(pr_number: str, git_ref: str, namespace: str, config: Config) -> Dict[str, Any]:
    gitops = config.gitops
    name = f"pr-{pr_number}-preview"
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {
            "name": name,
            "namespace": gitops.argocd_namespace,
            "labels": {"preview": "true", "pr-number": str(pr_number)},
        },
        "spec": {
            "project": gitops.argocd_project,
            "source": {
                "repoURL": gitops.repo_url,
                "targetRevision": git_ref,
                "path": gitops.preview_path,
                "kustomize": {"namePrefix": f"pr-{pr_number}-"},
            },
            "destination": {
                "server": "https://kubernetes.default.svc",
                "namespace": namespace,
            },
            "syncPolicy": {
                "automated": {"prune": True, "selfHeal": True},
                "syncOptions": ["CreateNamespace=true", "ServerSideApply=true"],
            },
        },
    }


class GitOpsWorkflow:
    """GitOps operations over kubectl, argocd and git."""

    def __init__(
        self,
        config: Config,
        kubectl: Optional[KubectlTool] = None,
        argocd: Optional[ArgoCDTool] = None,
        git: Optional[GitTool] = None,
    ) -> None:
        self.config = config
        self.gitops = config.gitops
        self.root = Path(config.project.root)
        tools = config.tools
        self.kubectl = kubectl or KubectlTool(tools.kubectl)
        self.argocd = argocd or ArgoCDTool(tools.argocd)
        self.git = git or GitTool(executable=tools.git, repo_root=str(self.root))

    # ----- Naming -----------------------------------------------------------------

    def namespace(self, environment: str) -> str:
        return f"{self.gitops.namespace_prefix}-{environment}"

    def app_name(self, environment: str) -> str:
        return f"{environment}-{self.gitops.app_suffix}"

    def overlay(self, environment: str) -> Path:
        return Path(self.gitops.overlays_dir) / environment

    # ----- Operations -------------------------------------------------------------

    def check_prereqs(self) -> None:
        self.kubectl.require_installed()
        if not self.argocd.is_installed():
            logger.warning("ArgoCD CLI is not available. Some features may be limited.")
        if not self.kubectl.cluster_reachable():
            raise ToolExecutionError("kubectl", "Cannot connect to Kubernetes cluster")
        logger.info("Prerequisites checked")

    def current_image(self, app: str, environment: str) -> str:
        deployment = self.kubectl.get_json("deployment", app, self.namespace(environment))
        spec = ((deployment or {}).get("spec") or {}).get("template") or {}
        containers = (spec.get("spec") or {}).get("containers") or []
        if not containers:
            raise ToolExecutionError(
                "kubectl", f"Could not find {app} deployment in {environment} environment"
            )
        return str(containers[0].get("image", ""))

    def promote(self, app: str, from_env: str, to_env: str, tag: str = "latest") -> Path:
        """Point the `to_env` overlay at `tag`, push, and ask ArgoCD to sync."""
        logger.info("Promoting %s from %s to %s...", app, from_env, to_env)
        logger.info("Current image in %s: %s", from_env, self.current_image(app, from_env))

        relative = self.overlay(to_env) / "kustomization.yaml"
        path = self.root / relative
        if not path.is_file():
            raise FileSystemError(str(path), "Kustomization file not found")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ParserError("kustomization", f"Failed to parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ParserError("kustomization", f"{path} is not a mapping")
        set_image_tag(data, app, tag)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")

        self.git.add(relative.as_posix())
        self.git.commit(f"Promote {app} to {to_env}: {tag}")
        self.git.push(self.gitops.git_remote, self.gitops.git_branch)
        logger.info("Promoted %s to %s environment", app, to_env)

        if self.argocd.is_installed():
            if self.argocd.sync(self.app_name(to_env)):
                logger.info("Triggered ArgoCD sync")
            else:
                logger.warning("ArgoCD sync of %s failed", self.app_name(to_env))
        return path

    def rollback(self, app: str, environment: str, revision: str = "HEAD~1") -> str:
        """Return ``"argocd"`` or ``"git"`` depending on the path taken."""
        logger.info("Rolling back %s in %s to %s...", app, environment, revision)
        if self.argocd.is_installed():
            self.argocd.rollback(self.app_name(environment), revision)
            logger.info("Rollback initiated via ArgoCD")
            return "argocd"
        overlay = self.overlay(environment).as_posix()
        self.git.checkout_paths(revision, overlay)
        self.git.add(overlay)
        self.git.commit(f"Rollback {app} in {environment} to {revision}")
        self.git.push(self.gitops.git_remote, self.gitops.git_branch)
        logger.info("Rollback committed to git")
        return "git"

    def health(self, app: str, environment: str) -> DeploymentHealth:
        namespace = self.namespace(environment)
        deployment = self.kubectl.get_json("deployment", app, namespace) or {}
        status = deployment.get("status") or {}
        available = any(
            c.get("type") == "Available" and c.get("status") == "True"
            for c in status.get("conditions") or [] if isinstance(c, dict)
        )
        report = DeploymentHealth(
            app=app,
            namespace=namespace,
            available=available,
            ready_replicas=int(status.get("readyReplicas") or 0),
            replicas=int((deployment.get("spec") or {}).get("replicas") or 0),
        )
        if not report.available:
            logger.error("Deployment is not healthy")
            return report
        if report.healthy:
            logger.info("All pods are ready (%d/%d)", report.ready_replicas, report.replicas)
        else:
            logger.error("Pods not ready (%d/%d)", report.ready_replicas, report.replicas)
            return report

        if self.argocd.is_installed():
            report.sync_status = self.argocd.sync_status(self.app_name(environment))
            if report.sync_status == "Synced":
                logger.info("ArgoCD application is synced")
            else:
                logger.warning("ArgoCD application sync status: %s", report.sync_status)
        return report

    def preview_create(self, pr_number: str, git_ref: str) -> str:
        namespace = f"pr-{pr_number}-preview"
        logger.info("Creating preview environment for PR #%s...", pr_number)
        self.kubectl.ensure_namespace(namespace, {"preview": "true", "pr-number": str(pr_number)})
        manifest = preview_application(pr_number, git_ref, namespace, self.config)
        self.kubectl.apply_stdin(yaml.safe_dump(manifest, sort_keys=False))
        logger.info("Preview environment created for PR #%s", pr_number)
        return namespace

    def preview_cleanup(self, pr_number: str) -> None:
        name = f"pr-{pr_number}-preview"
        logger.info("Cleaning up preview environment for PR #%s...", pr_number)
        self.kubectl.delete("application", name, self.gitops.argocd_namespace)
        self.kubectl.delete("namespace", name)
        logger.info("Preview environment cleaned up for PR #%s", pr_number)

    def sync_all(self) -> List[str]:
        """Sync every application of the ArgoCD project; returns the app names."""
        if not self.argocd.is_installed():
            logger.warning("ArgoCD CLI not available. Manual sync required.")
            return []
        apps = self.argocd.list_apps(self.gitops.argocd_project)
        if not apps:
            logger.warning("No applications found to sync")
        for app in apps:
            logger.info("Syncing %s...", app)
            if not self.argocd.sync(app):
                logger.warning("Sync of %s failed", app)
        logger.info("Application sync completed")
        return apps

    def argocd_password(self) -> str:
        """Decode the ArgoCD initial admin password secret."""
        secret = self.kubectl.get_json("secret", "argocd-initial-admin-secret",
                                       self.gitops.argocd_namespace) or {}
        encoded = (secret.get("data") or {}).get("password")
        if not encoded:
            raise ToolExecutionError("kubectl", "Could not retrieve ArgoCD admin password")
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ParserError("argocd", f"Admin password secret is not valid base64: {e}") from e


__all__ = ["GitOpsWorkflow", "DeploymentHealth", "set_image_tag", "preview_application"]
