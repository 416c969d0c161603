"""Pipeline stages.

Each stage validates its CI environment, drives one external tool (or the
Checkmarx REST API), writes its reports under ``project.results_dir`` and
returns a :class:`StageReport` whose gate decides the exit code.
"""
from .checkmarx_scan import run_checkmarx_scan
from .common import StageReport
from .docker_build import BuildSettings, run_docker_build, validate_dockerfile
from .gitops import DeploymentHealth, GitOpsWorkflow
from .image_push import PushSettings, run_image_push
from .policy_validate import run_policy_validation
from .snyk_scan import run_snyk_scan
from .trivy_scan import run_trivy_scan

__all__ = [
    "BuildSettings",
    "DeploymentHealth",
    "GitOpsWorkflow",
    "PushSettings",
    "StageReport",
    "run_checkmarx_scan",
    "run_docker_build",
    "run_image_push",
    "run_policy_validation",
    "run_snyk_scan",
    "run_trivy_scan",
    "validate_dockerfile",
]
