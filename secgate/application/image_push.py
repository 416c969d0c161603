# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Registry push of a locally built image.

Pipeline
--------
1. Prerequisites: registry URL, docker daemon, optional cosign
2. Verify the local image exists, log in when credentials are set
3. Tag for the registry and push; record the repo digest
4. Optional cosign sign/verify, optional syft SBOM (attested when signing)
5. Extra tags: ``latest``, ``security-approved-YYYYMMDD``, ``build-<pipeline>``
6. Remove stale local registry tags, write ``push-report.md``

Login, tag and push failures are fatal. Extra tags, SBOM generation and
local cleanup only warn.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Mapping, Optional

from secgate.config import Config
from secgate.core.exceptions import ConfigurationError, ToolExecutionError
from secgate.core.logging_config import get_logger
from secgate.core.models._shared import now_iso
from secgate.infra.reports import write_text
from secgate.infra.tools import CosignTool, DockerTool, SyftTool

from .common import StageReport, stage_dir

logger = get_logger(__name__)

REPORT_DIR = "push"


def full_image_name(name: str, tag: str, registry: str = "") -> str:
    """``REGISTRY/NAME:TAG`` or ``NAME:TAG`` without a registry."""
    if registry:
        return f"{registry.rstrip('/')}/{name}:{tag}"
    return f"{name}:{tag}"


def approved_tag(image: str, when: Optional[datetime] = None) -> str:
    """``repo:security-approved-YYYYMMDD`` for `image`."""
    when = when or datetime.now(timezone.utc)
    return f"{image.rsplit(':', 1)[0]}:security-approved-{when:%Y%m%d}"


def registry_login(docker: DockerTool, registry: str, username: str, password: str) -> bool:
    """Log in when both credentials are set; returns whether a login happened.

    Raises
    ------
    ToolExecutionError
        If ``docker login`` is rejected.
    """
    if not (username and password):
        logger.info("Using existing registry authentication")
        return False
    logger.info("Logging in to registry: %s", registry)
    docker.login(registry, username, password)
    logger.info("Successfully logged in to registry")
    return True


@dataclass
class PushSettings:
    """Push inputs, read from the environment by :meth:`from_env`."""

    image_name: str = "secure-app"
    image_tag: str = "latest"
    registry: str = ""
    username: str = ""
    password: str = ""
    sign: bool = False
    verify: bool = False
    cosign_key: Optional[str] = None
    cosign_public_key: Optional[str] = None
    cleanup: bool = True
    clean_build_cache: bool = False
    pipeline_id: Optional[str] = None

    @property
    def local_image(self) -> str:
        return full_image_name(self.image_name, self.image_tag)

    @property
    def registry_image(self) -> str:
        return full_image_name(self.image_name, self.image_tag, self.registry)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "PushSettings":
        return cls(
            image_name=environ.get("IMAGE_NAME") or "secure-app",
            image_tag=environ.get("IMAGE_TAG") or "latest",
            registry=environ.get("REGISTRY_URL", ""),
            username=environ.get("REGISTRY_USER", ""),
            password=environ.get("REGISTRY_PASSWORD", ""),
            sign=environ.get("SIGN_IMAGE", "false") == "true",
            verify=environ.get("VERIFY_SIGNATURE", "false") == "true",
            cosign_key=environ.get("COSIGN_KEY") or None,
            cosign_public_key=environ.get("COSIGN_PUBLIC_KEY") or None,
            clean_build_cache=environ.get("CLEAN_BUILD_CACHE", "false") == "true",
            pipeline_id=environ.get("CI_PIPELINE_ID") or None,
        )


def additional_tags(settings: PushSettings, when: Optional[datetime] = None) -> List[str]:
    when = when or datetime.now(timezone.utc)
    tags = [
        "latest",
        f"security-approved-{when:%Y%m%d}",
        f"build-{settings.pipeline_id or int(time.time())}",
    ]
    return [t for t in tags if t != settings.image_tag]


def check_push_prerequisites(docker: DockerTool, cosign: CosignTool, settings: PushSettings) -> None:
    if not settings.registry:
        raise ConfigurationError("REGISTRY_URL", "Registry URL not provided")
    docker.require_installed()
    if not docker.daemon_running():
        raise ToolExecutionError("docker", "Docker daemon is not running")
    if not (settings.username and settings.password):
        logger.warning("Registry credentials not provided. Assuming already logged in.")
    if (settings.sign or settings.verify) and not cosign.is_installed():
        logger.warning("Cosign not found. Image signing will be skipped.")
        settings.sign = False
        settings.verify = False
    logger.info("Prerequisites check completed")


def _sign_and_verify(cosign: CosignTool, image: str, settings: PushSettings) -> bool:
    if not settings.sign:
        logger.info("Image signing disabled, skipping...")
    else:
        if not settings.cosign_key:
            logger.warning("COSIGN_KEY not provided. Using keyless signing.")
        if not cosign.sign(image, settings.cosign_key):
            raise ToolExecutionError("cosign", f"Failed to sign image: {image}")
        logger.info("Image signed successfully")

    if not settings.verify:
        logger.info("Signature verification disabled, skipping...")
    else:
        if not settings.cosign_public_key:
            logger.warning("COSIGN_PUBLIC_KEY not provided. Using keyless verification.")
        if not cosign.verify(image, settings.cosign_public_key):
            raise ToolExecutionError("cosign", f"Failed to verify image signature: {image}")
        logger.info("Image signature verified successfully")
    return settings.sign


def _generate_sbom(
    syft: SyftTool,
    cosign: CosignTool,
    image: str,
    settings: PushSettings,
    results_dir: Path,
) -> Optional[Path]:
    if not syft.is_installed():
        logger.warning("Syft not found. SBOM generation skipped.")
        return None
    logger.info("Generating SBOM for image: %s", image)
    sbom = syft.sbom(image)
    if sbom is None:
        logger.warning("Failed to generate SBOM")
        return None
    path = write_text(results_dir / "sbom.json", sbom)
    if settings.sign:
        if cosign.attest(image, path):
            logger.info("SBOM attestation attached")
        else:
            logger.warning("Failed to attach SBOM attestation")
    return path


def _push_additional_tags(docker: DockerTool, image: str, settings: PushSettings) -> List[str]:
    pushed = []
    for tag in additional_tags(settings):
        target = full_image_name(settings.image_name, tag, settings.registry)
        logger.info("Creating additional tag: %s", target)
        if docker.tag(image, target) and docker.push(target):
            pushed.append(target)
        else:
            logger.warning("Failed to push additional tag: %s", target)
    return pushed


def cleanup_local_images(docker: DockerTool, settings: PushSettings) -> List[str]:
    """Remove local registry tags other than the main one; returns the removed tags."""
    repository = f"{settings.registry.rstrip('/')}/{settings.image_name}"
    removed = []
    for image in docker.list_images(repository):
        if image == settings.registry_image:
            continue
        if docker.remove(image):
            removed.append(image)
        else:
            logger.warning("Failed to remove: %s", image)
    if settings.clean_build_cache:
        logger.info("Cleaning Docker build cache...")
        docker.prune_builder()
    logger.info("Local cleanup completed")
    return removed


def push_report(image: str, settings: PushSettings, digest: Optional[str], sbom: bool) -> str:
    lines = [
        "# Container Image Push Report",
        "",
        f"**Image:** `{image}`  ",
        f"**Push Date:** {now_iso()}  ",
        f"**Registry:** {settings.registry}",
        "",
        "## Push Details",
        "",
        f"- **Image Name:** {settings.image_name}",
        f"- **Image Tag:** {settings.image_tag}",
        f"- **Full Image Name:** {image}",
        f"- **Image Digest:** {digest or 'N/A'}",
        "",
        "## Security Features",
        "",
        f"- **Image Signing:** {str(settings.sign).lower()}",
        f"- **Signature Verification:** {str(settings.verify).lower()}",
        f"- **SBOM Generation:** {str(sbom).lower()}",
        "",
        "## Verification Commands",
        "",
        "```bash",
        f"docker pull {image}",
    ]
    if settings.sign:
        lines.append(f"cosign verify {image}")
    lines += [f"docker image inspect {image}", "```", ""]
    return "\n".join(lines)


def run_image_push(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
    docker: Optional[DockerTool] = None,
    cosign: Optional[CosignTool] = None,
    syft: Optional[SyftTool] = None,
    settings: Optional[PushSettings] = None,
) -> StageReport:
    """Push ``IMAGE_NAME:IMAGE_TAG`` to ``REGISTRY_URL`` with extra tags and provenance."""
    environ = os.environ if environ is None else environ
    settings = settings or PushSettings.from_env(environ)
    tools = config.tools
    docker = docker or DockerTool(executable=tools.docker, timeout_s=tools.timeout)
    cosign = cosign or CosignTool(executable=tools.cosign, timeout_s=tools.timeout)
    syft = syft or SyftTool(executable=tools.syft, timeout_s=tools.timeout)

    check_push_prerequisites(docker, cosign, settings)
    local, image = settings.local_image, settings.registry_image
    logger.info("Verifying local image exists: %s", local)
    if not docker.image_exists(local):
        raise ToolExecutionError("docker", f"Local image not found: {local}")
    info = docker.inspect(local)
    logger.info("Image details: size=%.1fMB created=%s", info["size"] / (1024 * 1024), info["created"])

    registry_login(docker, settings.registry, settings.username, settings.password)
    if local != image:
        logger.info("Tagging image for registry: %s -> %s", local, image)
        if not docker.tag(local, image):
            raise ToolExecutionError("docker", f"Failed to tag image: {local} -> {image}")

    logger.info("Pushing image to registry: %s", image)
    if not docker.push(image):
        raise ToolExecutionError("docker", f"Failed to push image: {image}")
    logger.info("Image pushed successfully: %s", image)

    results_dir = stage_dir(config, REPORT_DIR)
    reports: List[Path] = []
    digest = docker.repo_digest(image)
    if digest:
        logger.info("Image digest: %s", digest)
        reports.append(write_text(results_dir / "pushed-image-digest.txt", f"{digest}\n"))

    signed = _sign_and_verify(cosign, image, settings)
    sbom = _generate_sbom(syft, cosign, image, settings, results_dir)
    if sbom is not None:
        reports.append(sbom)
    tags = _push_additional_tags(docker, image, settings)
    removed = cleanup_local_images(docker, settings) if settings.cleanup else []

    reports.append(write_text(results_dir / "push-report.md",
                              push_report(image, settings, digest, sbom is not None)))
    logger.info("Docker push pipeline completed successfully!")
    return StageReport(
        gate=None,
        counts={
            "image": image,
            "digest": digest,
            "additional_tags": tags,
            "signed": signed,
            "sbom": sbom is not None,
            "removed_local_images": removed,
        },
        reports=reports,
    )


__all__ = [
    "PushSettings",
    "additional_tags",
    "approved_tag",
    "cleanup_local_images",
    "full_image_name",
    "registry_login",
    "run_image_push",
]
