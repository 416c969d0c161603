# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Container security policy package.

Covers CIS Kubernetes Benchmark 4.2.1, 4.2.5 and 4.2.6 (privileged,
privilege escalation, root) plus image, capability and resource hygiene.
Rules apply to regular, init and ephemeral containers, except the
liveness/readiness probe warning which only looks at regular containers.
"""
from __future__ import annotations

from typing import Any, Dict, List

from .engine import PolicyContext, PolicyPackage
from .manifests import (
    as_dict,
    as_list,
    containers,
    pod_spec,
    resource_name,
    security_context,
)

container_security = PolicyPackage("container-security")

FORBIDDEN_CAPABILITIES = {"SYS_ADMIN", "NET_ADMIN", "ALL"}


def _label(doc: Dict[str, Any], container: Dict[str, Any]) -> str:
    return f"{resource_name(doc)} container '{container.get('name', '<unnamed>')}'"


def split_image(image: str):
    """Split an image reference into ``(registry, repository, tag, digest)``.

    >>> split_image("ghcr.io/org/app:1.2@sha256:abc")
    ('ghcr.io', 'org/app', '1.2', 'sha256:abc')
    >>> split_image("nginx")
    ('docker.io', 'nginx', None, None)
    """
    digest = None
    if "@" in image:
        image, digest = image.split("@", 1)
    tag = None
    last = image.rsplit("/", 1)[-1]
    if ":" in last:
        image, tag = image.rsplit(":", 1)
    parts = image.split("/", 1)
    if len(parts) == 2 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        registry, repository = parts
    else:
        registry, repository = "docker.io", image
    return registry, repository, tag, digest


@container_security.deny
def deny_privileged(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    return [
        f"{_label(doc, c)} must not run privileged"
        for c in containers(doc)
        if security_context(c).get("privileged") is True
    ]


@container_security.deny
def deny_privilege_escalation(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    return [
        f"{_label(doc, c)} must set securityContext.allowPrivilegeEscalation to false"
        for c in containers(doc)
        if security_context(c).get("allowPrivilegeEscalation") is not False
    ]


@container_security.deny
def deny_root_user(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    pod_ctx = as_dict((pod_spec(doc) or {}).get("securityContext"))
    messages = []
    for c in containers(doc):
        sc = security_context(c)
        run_as_user = sc.get("runAsUser", pod_ctx.get("runAsUser"))
        non_root = sc.get("runAsNonRoot", pod_ctx.get("runAsNonRoot"))
        if run_as_user == 0:
            messages.append(f"{_label(doc, c)} must not run as UID 0")
        elif non_root is not True:
            messages.append(f"{_label(doc, c)} must set runAsNonRoot to true")
    return messages


@container_security.deny
def deny_writable_root_filesystem(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    return [
        f"{_label(doc, c)} must set readOnlyRootFilesystem to true"
        for c in containers(doc)
        if security_context(c).get("readOnlyRootFilesystem") is not True
    ]


@container_security.deny
def deny_dangerous_capabilities(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    for c in containers(doc):
        caps = as_dict(security_context(c).get("capabilities"))
        added = {str(a).upper() for a in as_list(caps.get("add"))}
        for cap in sorted(added & FORBIDDEN_CAPABILITIES):
            messages.append(f"{_label(doc, c)} must not add capability {cap}")
        dropped = {str(d).upper() for d in as_list(caps.get("drop"))}
        if "ALL" not in dropped:
            messages.append(f"{_label(doc, c)} must drop ALL capabilities")
    return messages


@container_security.deny
def deny_missing_limits(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    for c in containers(doc):
        limits = as_dict(as_dict(c.get("resources")).get("limits"))
        for resource in ("cpu", "memory"):
            if not limits.get(resource):
                messages.append(f"{_label(doc, c)} must set a {resource} limit")
    return messages


@container_security.deny
def deny_untagged_or_latest_image(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    for c in containers(doc):
        image = str(c.get("image") or "")
        if not image:
            messages.append(f"{_label(doc, c)} must specify an image")
            continue
        _, _, tag, digest = split_image(image)
        if digest:
            continue
        if tag is None:
            messages.append(f"{_label(doc, c)} image '{image}' must use an explicit tag")
        elif tag == "latest":
            messages.append(f"{_label(doc, c)} image '{image}' must not use the 'latest' tag")
    return messages


@container_security.deny
def deny_untrusted_registry(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if not ctx.trusted_registries:
        return []
    messages = []
    for c in containers(doc):
        image = str(c.get("image") or "")
        if not image:
            continue
        registry, repository, _, _ = split_image(image)
        reference = f"{registry}/{repository}"
        if not any(reference.startswith(prefix.rstrip("/") + "/") or registry == prefix
                   for prefix in ctx.trusted_registries):
            messages.append(f"{_label(doc, c)} image '{image}' comes from an untrusted registry")
    return messages


@container_security.warn
def warn_missing_requests(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    for c in containers(doc):
        requests = as_dict(as_dict(c.get("resources")).get("requests"))
        for resource in ("cpu", "memory"):
            if not requests.get(resource):
                messages.append(f"{_label(doc, c)} should set a {resource} request")
    return messages


@container_security.warn
def warn_missing_probes(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    spec = pod_spec(doc) or {}
    for c in as_list(spec.get("containers")):
        if not isinstance(c, dict):
            continue
        for probe in ("livenessProbe", "readinessProbe"):
            if not c.get(probe):
                messages.append(f"{_label(doc, c)} should define a {probe}")
    return messages


__all__ = ["container_security", "split_image", "FORBIDDEN_CAPABILITIES"]
