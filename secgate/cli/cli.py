"""SecGate CLI - Command Line Interface.

One subcommand per pipeline stage. Every stage exits 0 when its gate
passed and 1 when the gate failed or a fatal error occurred.

Synopsis
--------
trivy
    Container image scan (``CI_REGISTRY_IMAGE``, ``IMAGE_TAG``)
snyk
    Dependency scan (``SNYK_TOKEN``)
checkmarx
    SAST scan through the Checkmarx REST API
policy
    Kubernetes manifest policy validation
dockerfile
    Static Dockerfile checks (advisory)
build
    Image build plus post-build vulnerability gate, optional push
push
    Registry push with extra tags, optional cosign signing and SBOM
gitops
    Promotion, rollback, health and preview environment commands
history
    Recorded gate runs (requires ``database.enabled``)

Options
-------
Global options, given before the subcommand:
    --config, -c
        YAML/TOML configuration file (default: secgate.yaml if present)
    --log-level
        DEBUG, INFO, WARNING, ERROR or CRITICAL
    --root
        Project root
    --results-dir
        Directory for stage reports
    --db
        Record gate runs in this SQLite database

Examples
--------
    $ secgate trivy
    $ secgate --db security-reports/secgate.db policy --engine conftest
    $ secgate build --push --registry registry.example.com/group
    $ secgate push --registry registry.example.com/group --sign
    $ secgate gitops promote secure-app staging production v1.2.3
    $ secgate history --gate trivy --limit 5

Author: Anush Krishna
License: MIT
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, List, Optional

import typer

from secgate.application import (
    BuildSettings,
    GitOpsWorkflow,
    PushSettings,
    StageReport,
    run_checkmarx_scan,
    run_docker_build,
    run_image_push,
    run_policy_validation,
    run_snyk_scan,
    run_trivy_scan,
    validate_dockerfile,
)
from secgate.config import Config, ConfigLoader
from secgate.core.exceptions import SecGateError
from secgate.core.gates import enforce_gate
from secgate.core.logging_config import get_logger, setup_logging
from secgate.infra.db import list_gate_runs

logger = get_logger("secgate.cli")

app = typer.Typer(
    help="SecGate CLI - DevSecOps security gates for CI pipelines",
    add_completion=False,
)
gitops_app = typer.Typer(help="GitOps workflow: promote, rollback, health, previews")
app.add_typer(gitops_app, name="gitops")


def _config(ctx: typer.Context) -> Config:
    return ctx.find_root().obj


def _fail(exc: SecGateError) -> None:
    logger.error("ERROR: %s", exc.message)
    for key, value in exc.details.items():
        logger.debug("  %s: %s", key, value)
    raise typer.Exit(code=1)


def _run_stage(stage: Callable[[], StageReport]) -> StageReport:
    """Run a stage, turning SecGateError and blocked gates into exit code 1."""
    try:
        report = stage()
        if report.gate is not None and report.enforced:
            enforce_gate(report.gate)
    except SecGateError as exc:
        _fail(exc)
    if report.gate is None:
        typer.echo("No gate evaluated.")
    elif report.passed:
        typer.secho(f"{report.gate.gate} gate passed.", fg=typer.colors.GREEN)
    else:
        typer.secho(f"{report.gate.gate} gate failed (not enforced).", fg=typer.colors.YELLOW)
    for check in report.gate.warnings if report.gate is not None else []:
        typer.secho(check.message, fg=typer.colors.YELLOW)
    return report


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file (YAML or TOML)"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    root: Optional[str] = typer.Option(None, "--root", help="Project root directory"),
    results_dir: Optional[str] = typer.Option(
        None, "--results-dir", help="Directory for stage reports"
    ),
    db: Optional[str] = typer.Option(
        None, "--db", help="Record gate runs in this SQLite database"
    ),
) -> None:
    """Load configuration and set up logging before any subcommand."""
    try:
        config = ConfigLoader().load_config(config_file=config_file, args={
            "log_level": log_level,
            "root": root,
            "results_dir": results_dir,
            "db_path": db,
            "db_enabled": True if db else None,
        })
    except SecGateError as exc:
        typer.echo(f"ERROR: {exc.message}", err=True)
        raise typer.Exit(code=1)

    log_file = Path(config.logging.file)
    setup_logging(
        log_level=config.logging.level,
        log_file=log_file.name,
        log_dir=str(log_file.parent),
        console_output=config.logging.console,
        file_output=config.logging.file_output,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
    )
    ctx.obj = config


# ----- Scan stages ----------------------------------------------------------------


@app.command("trivy")
def trivy(ctx: typer.Context) -> None:
    """Scan ``CI_REGISTRY_IMAGE:IMAGE_TAG`` with Trivy and apply the container gate."""
    config = _config(ctx)
    _run_stage(lambda: run_trivy_scan(config))


@app.command("snyk")
def snyk(ctx: typer.Context) -> None:
    """Scan dependency manifests with Snyk and apply the SCA gate."""
    config = _config(ctx)
    _run_stage(lambda: run_snyk_scan(config))


@app.command("checkmarx")
def checkmarx(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(None, "--url", help="Checkmarx server URL"),
    full: bool = typer.Option(False, "--full", help="Run a full instead of an incremental scan"),
) -> None:
    """Upload the source tree to Checkmarx, wait for the scan and apply the SAST gate."""
    config = _config(ctx)
    if url:
        config.checkmarx.url = url
    if full:
        config.checkmarx.incremental = False
    _run_stage(lambda: run_checkmarx_scan(config))


@app.command("policy")
def policy(
    ctx: typer.Context,
    engine: Optional[str] = typer.Option(None, "--engine", help="builtin or conftest"),
    manifests_dir: Optional[str] = typer.Option(None, "--manifests-dir", help="Manifest directory"),
    policies_dir: Optional[str] = typer.Option(None, "--policies-dir", help="Rego policy directory"),
    packages: Optional[List[str]] = typer.Option(
        None, "--package", "-p", help="Builtin policy package to enable (repeatable)"
    ),
    trusted_registries: Optional[List[str]] = typer.Option(
        None, "--trusted-registry", help="Allowed image registry (repeatable)"
    ),
) -> None:
    """Validate Kubernetes manifests against the security policies."""
    config = _config(ctx)
    if engine:
        config.policy.engine = engine
    if manifests_dir:
        config.policy.manifests_dir = manifests_dir
    if policies_dir:
        config.policy.policies_dir = policies_dir
    if packages:
        config.policy.packages = list(packages)
    if trusted_registries:
        config.policy.trusted_registries = list(trusted_registries)
    try:
        config.validate()
    except SecGateError as exc:
        _fail(exc)
    _run_stage(lambda: run_policy_validation(config))


@app.command("dockerfile")
def dockerfile(path: str = typer.Argument("Dockerfile", help="Dockerfile to check")) -> None:
    """Report Dockerfile hygiene issues. Never fails on findings."""
    try:
        issues = validate_dockerfile(path)
    except SecGateError as exc:
        _fail(exc)
    if not issues:
        typer.secho("Dockerfile security validation passed.", fg=typer.colors.GREEN)
    for issue in issues:
        typer.secho(f"- {issue}", fg=typer.colors.YELLOW)


@app.command("build")
def build(
    ctx: typer.Context,
    image_name: Optional[str] = typer.Option(None, "--image-name", help="Image name"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Image tag"),
    registry: Optional[str] = typer.Option(None, "--registry", help="Registry prefix"),
    dockerfile_path: Optional[str] = typer.Option(None, "--dockerfile", help="Dockerfile path"),
    context: Optional[str] = typer.Option(None, "--context", help="Build context"),
    no_scan: bool = typer.Option(False, "--no-scan", help="Skip the post-build Trivy scan"),
    push: bool = typer.Option(False, "--push", help="Push the image after a passing scan"),
) -> None:
    """Build the image with provenance labels, scan it, and optionally push it."""
    config = _config(ctx)
    settings = BuildSettings.from_env(os.environ, config.project.root)
    for attr, value in (
        ("image_name", image_name),
        ("image_tag", tag),
        ("registry", registry),
        ("dockerfile", dockerfile_path),
        ("context", context),
    ):
        if value:
            setattr(settings, attr, value)
    if no_scan:
        settings.security_scan = False
    if push:
        settings.push = True
    report = _run_stage(lambda: run_docker_build(config, settings=settings))
    typer.echo(f"Image: {report.counts.get('image')}")
    if report.counts.get("pushed"):
        typer.echo("Pushed: yes")


@app.command("push")
def push_image(
    ctx: typer.Context,
    image_name: Optional[str] = typer.Option(None, "--image-name", "-i", help="Image name"),
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Image tag"),
    registry: Optional[str] = typer.Option(None, "--registry", "-r", help="Registry URL"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Registry username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Registry password"),
    sign: bool = typer.Option(False, "--sign", help="Sign the image with cosign"),
    verify: bool = typer.Option(False, "--verify", help="Verify the image signature"),
    no_cleanup: bool = typer.Option(False, "--no-cleanup", help="Keep local registry tags"),
) -> None:
    """Push a locally built image to the registry with extra tags."""
    config = _config(ctx)
    settings = PushSettings.from_env(os.environ)
    for attr, value in (
        ("image_name", image_name),
        ("image_tag", tag),
        ("registry", registry),
        ("username", user),
        ("password", password),
    ):
        if value:
            setattr(settings, attr, value)
    if sign:
        settings.sign = True
    if verify:
        settings.verify = True
    if no_cleanup:
        settings.cleanup = False
    report = _run_stage(lambda: run_image_push(config, settings=settings))
    typer.echo(f"Image: {report.counts['image']}")
    typer.echo(f"Digest: {report.counts.get('digest') or 'N/A'}")
    for extra in report.counts.get("additional_tags", []):
        typer.echo(f"Tag: {extra}")


# ----- History --------------------------------------------------------------------


@app.command("history")
def history(
    ctx: typer.Context,
    gate: Optional[str] = typer.Option(None, "--gate", "-g", help="Filter by gate name"),
    project: Optional[str] = typer.Option(None, "--project", help="Filter by project"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum rows"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """Show recorded gate runs, newest first."""
    config = _config(ctx)
    db_path = config.database.path
    if "://" not in db_path and db_path != ":memory:" and not Path(db_path).exists():
        typer.echo(f"No database at {db_path}. Enable database recording first.", err=True)
        raise typer.Exit(code=1)
    try:
        runs = list_gate_runs(db_path, gate=gate, project=project, limit=limit)
    except SecGateError as exc:
        _fail(exc)
    if as_json:
        typer.echo(json.dumps(runs, indent=2, default=str))
        return
    if not runs:
        typer.echo("No gate runs recorded.")
        return
    for run in runs:
        status = "PASSED" if run["passed"] else "FAILED"
        observed = ", ".join(f"{k}={v}" for k, v in run["observed"].items())
        typer.echo(
            f"#{run['id']} {run['scan_timestamp']} {run['gate']:<10} {status:<6} "
            f"{run['project'] or '-'} {observed}"
        )


# ----- GitOps ---------------------------------------------------------------------


def _workflow(ctx: typer.Context, check: bool = True) -> GitOpsWorkflow:
    flow = GitOpsWorkflow(_config(ctx))
    if check:
        flow.check_prereqs()
    return flow


@gitops_app.command("check-prereqs")
def gitops_check(ctx: typer.Context) -> None:
    """kubectl reachable cluster (fatal), argocd CLI (optional)."""
    try:
        _workflow(ctx)
    except SecGateError as exc:
        _fail(exc)
    typer.secho("Prerequisites checked.", fg=typer.colors.GREEN)


@gitops_app.command("promote")
def gitops_promote(
    ctx: typer.Context,
    app_name: str = typer.Argument(..., metavar="APP"),
    from_env: str = typer.Argument(..., metavar="FROM"),
    to_env: str = typer.Argument(..., metavar="TO"),
    tag: str = typer.Argument("latest", metavar="TAG"),
) -> None:
    """Promote APP from FROM to TO by rewriting the TO overlay image tag."""
    try:
        path = _workflow(ctx).promote(app_name, from_env, to_env, tag)
    except SecGateError as exc:
        _fail(exc)
    typer.secho(f"Promoted {app_name} to {to_env} ({path}).", fg=typer.colors.GREEN)


@gitops_app.command("rollback")
def gitops_rollback(
    ctx: typer.Context,
    app_name: str = typer.Argument(..., metavar="APP"),
    environment: str = typer.Argument(..., metavar="ENV"),
    revision: str = typer.Argument("HEAD~1", metavar="REVISION"),
) -> None:
    """Roll APP in ENV back to REVISION."""
    try:
        via = _workflow(ctx).rollback(app_name, environment, revision)
    except SecGateError as exc:
        _fail(exc)
    typer.secho(f"Rollback of {app_name} in {environment} done via {via}.", fg=typer.colors.GREEN)


@gitops_app.command("health")
def gitops_health(
    ctx: typer.Context,
    app_name: str = typer.Argument(..., metavar="APP"),
    environment: str = typer.Argument(..., metavar="ENV"),
) -> None:
    """Exit 1 unless the deployment is Available with every replica ready."""
    try:
        report = _workflow(ctx).health(app_name, environment)
    except SecGateError as exc:
        _fail(exc)
    typer.echo(f"{report.namespace}/{report.app}: {report.ready_replicas}/{report.replicas} ready, "
               f"sync={report.sync_status or 'n/a'}")
    if not report.healthy:
        raise typer.Exit(code=1)


@gitops_app.command("preview-create")
def gitops_preview_create(
    ctx: typer.Context,
    pr_number: str = typer.Argument(..., metavar="PR"),
    git_ref: str = typer.Argument(..., metavar="REF"),
) -> None:
    """Create the pr-PR-preview namespace and its ArgoCD Application."""
    try:
        namespace = _workflow(ctx).preview_create(pr_number, git_ref)
    except SecGateError as exc:
        _fail(exc)
    typer.secho(f"Preview environment ready in namespace {namespace}.", fg=typer.colors.GREEN)


@gitops_app.command("preview-cleanup")
def gitops_preview_cleanup(
    ctx: typer.Context,
    pr_number: str = typer.Argument(..., metavar="PR"),
) -> None:
    """Delete the preview Application and namespace."""
    try:
        _workflow(ctx).preview_cleanup(pr_number)
    except SecGateError as exc:
        _fail(exc)
    typer.secho(f"Preview environment for PR #{pr_number} cleaned up.", fg=typer.colors.GREEN)


@gitops_app.command("sync-all")
def gitops_sync_all(ctx: typer.Context) -> None:
    """Sync every application of the ArgoCD project."""
    try:
        apps = _workflow(ctx).sync_all()
    except SecGateError as exc:
        _fail(exc)
    typer.echo(f"Synced {len(apps)} application(s).")


@gitops_app.command("get-password")
def gitops_get_password(ctx: typer.Context) -> None:
    """Print the ArgoCD initial admin password."""
    try:
        password = _workflow(ctx).argocd_password()
    except SecGateError as exc:
        _fail(exc)
    typer.echo(password)


__all__ = ["app"]
