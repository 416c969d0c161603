import base64

import pytest
import yaml

from secgate.application.gitops import GitOpsWorkflow, preview_application, set_image_tag
from secgate.core.exceptions import FileSystemError, ToolExecutionError

from .fakes import FakeArgo, FakeGit, FakeKubectl

DEPLOYMENT = {
    "spec": {
        "replicas": 3,
        "template": {"spec": {"containers": [{"name": "app", "image": "registry/secure-app:1.0"}]}},
    },
    "status": {
        "readyReplicas": 3,
        "conditions": [{"type": "Available", "status": "True"}],
    },
}


def _workflow(config, objects=None, argo=True, **kw):
    kubectl = FakeKubectl(objects if objects is not None else {
        ("deployment", "secure-app"): DEPLOYMENT,
    }, **kw)
    argocd = FakeArgo(installed=argo, apps=["staging-devsecops-app", "production-devsecops-app"])
    git = FakeGit(repo_root=config.project.root)
    return GitOpsWorkflow(config, kubectl=kubectl, argocd=argocd, git=git)


@pytest.fixture
def overlay(write):
    return write("k8s/overlays/production/kustomization.yaml", yaml.safe_dump({
        "resources": ["../../base"],
        "images": [{"name": "registry/secure-app", "newTag": "0.9"}, {"name": "redis", "newTag": "7"}],
    }))


def test_set_image_tag_updates_matching_entries():
    data = {"images": [{"name": "ghcr.io/acme/secure-app", "newTag": "1"}, {"name": "redis"}]}
    set_image_tag(data, "secure-app", "2")
    assert data["images"] == [{"name": "ghcr.io/acme/secure-app", "newTag": "2"}, {"name": "redis"}]


def test_set_image_tag_appends_when_missing():
    data = {"resources": []}
    set_image_tag(data, "secure-app", "2")
    assert data["images"] == [{"name": "secure-app", "newTag": "2"}]


def test_naming(config):
    flow = _workflow(config)
    assert flow.namespace("staging") == "devsecops-staging"
    assert flow.app_name("production") == "production-devsecops-app"


def test_promote_rewrites_overlay_and_pushes(config, overlay):
    flow = _workflow(config)
    path = flow.promote("secure-app", "staging", "production", "v1.2.3")

    assert path == overlay
    data = yaml.safe_load(overlay.read_text())
    assert data["images"][0] == {"name": "registry/secure-app", "newTag": "v1.2.3"}
    assert data["images"][1] == {"name": "redis", "newTag": "7"}
    assert data["resources"] == ["../../base"]
    assert flow.git.calls == [
        ["add", "k8s/overlays/production/kustomization.yaml"],
        ["commit", "-m", "Promote secure-app to production: v1.2.3"],
        ["push", "origin", "main"],
    ]
    assert flow.argocd.called("app", "sync", "production-devsecops-app")
    assert flow.kubectl.called("get", "deployment", "secure-app", "-o", "json", "-n", "devsecops-staging")


def test_promote_requires_source_deployment(config, overlay):
    flow = _workflow(config, objects={})
    with pytest.raises(ToolExecutionError):
        flow.promote("secure-app", "staging", "production", "v1")
    assert flow.git.calls == []


def test_promote_requires_overlay(config):
    with pytest.raises(FileSystemError):
        _workflow(config).promote("secure-app", "staging", "production", "v1")


def test_rollback_prefers_argocd(config):
    flow = _workflow(config)
    assert flow.rollback("secure-app", "staging", "5") == "argocd"
    assert flow.argocd.called("app", "rollback", "staging-devsecops-app", "5")
    assert flow.git.calls == []


def test_rollback_falls_back_to_git(config):
    flow = _workflow(config, argo=False)
    assert flow.rollback("secure-app", "staging") == "git"
    assert flow.git.calls[0] == ["checkout", "HEAD~1", "--", "k8s/overlays/staging"]
    assert flow.git.calls[-1] == ["push", "origin", "main"]


def test_health_reports_sync_status(config):
    report = _workflow(config).health("secure-app", "production")
    assert report.healthy
    assert report.namespace == "devsecops-production"
    assert report.sync_status == "Synced"


def test_health_detects_unready_pods(config):
    degraded = {**DEPLOYMENT, "status": {**DEPLOYMENT["status"], "readyReplicas": 1}}
    report = _workflow(config, objects={("deployment", "secure-app"): degraded}).health("secure-app", "production")
    assert report.available
    assert not report.healthy


def test_health_of_missing_deployment(config):
    report = _workflow(config, objects={}).health("secure-app", "production")
    assert not report.available
    assert not report.healthy


def test_check_prereqs(config):
    _workflow(config, argo=False).check_prereqs()
    with pytest.raises(ToolExecutionError):
        _workflow(config, reachable=False).check_prereqs()


def test_preview_lifecycle(config):
    flow = _workflow(config)
    assert flow.preview_create("42", "feature/login") == "pr-42-preview"
    assert flow.kubectl.called("label", "namespace", "pr-42-preview", "preview=true", "pr-number=42")
    application = yaml.safe_load(flow.kubectl.inputs[-1])
    assert application["metadata"]["name"] == "pr-42-preview"
    assert application["spec"]["source"]["targetRevision"] == "feature/login"
    assert application["spec"]["destination"]["namespace"] == "pr-42-preview"

    flow.preview_cleanup("42")
    assert flow.kubectl.called("delete", "application", "pr-42-preview")
    assert flow.kubectl.called("delete", "namespace", "pr-42-preview")


def test_preview_application_manifest(config):
    app = preview_application("7", "main", "pr-7-preview", config)
    assert app["spec"]["source"]["kustomize"] == {"namePrefix": "pr-7-"}
    assert app["spec"]["syncPolicy"]["automated"] == {"prune": True, "selfHeal": True}


def test_sync_all(config):
    flow = _workflow(config)
    assert flow.sync_all() == ["staging-devsecops-app", "production-devsecops-app"]
    assert len(flow.argocd.called("app", "sync")) == 2
    assert _workflow(config, argo=False).sync_all() == []


def test_argocd_password(config):
    secret = {"data": {"password": base64.b64encode(b"hunter2").decode()}}
    flow = _workflow(config, objects={("secret", "argocd-initial-admin-secret"): secret})
    assert flow.argocd_password() == "hunter2"
    with pytest.raises(ToolExecutionError):
        _workflow(config, objects={}).argocd_password()
