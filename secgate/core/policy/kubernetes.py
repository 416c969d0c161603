# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Kubernetes resource security policy package.

Host namespace isolation, RBAC hygiene, service exposure and workload
placement checks. Container-level settings live in ``container.py``.
"""
from __future__ import annotations

from typing import Any, Dict, List

from .engine import PolicyContext, PolicyPackage
from .manifests import (
    NAMESPACED_KINDS,
    as_dict,
    as_list,
    containers,
    kind,
    metadata,
    pod_metadata,
    pod_spec,
    resource_name,
)

kubernetes_security = PolicyPackage("kubernetes-security")

HOST_NAMESPACE_FIELDS = ("hostNetwork", "hostPID", "hostIPC")
RBAC_ROLE_KINDS = {"Role", "ClusterRole"}
RBAC_BINDING_KINDS = {"RoleBinding", "ClusterRoleBinding"}
APP_LABELS = ("app.kubernetes.io/name", "app")


@kubernetes_security.deny
def deny_host_namespaces(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    spec = pod_spec(doc)
    if spec is None:
        return []
    return [
        f"{resource_name(doc)} must not set {name}: true"
        for name in HOST_NAMESPACE_FIELDS
        if spec.get(name) is True
    ]


@kubernetes_security.deny
def deny_host_path_volumes(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    spec = pod_spec(doc)
    if spec is None:
        return []
    return [
        f"{resource_name(doc)} volume '{v.get('name', '<unnamed>')}' must not use hostPath"
        for v in as_list(spec.get("volumes"))
        if isinstance(v, dict) and "hostPath" in v
    ]


@kubernetes_security.deny
def deny_host_ports(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    messages = []
    for c in containers(doc):
        for port in as_list(c.get("ports")):
            if isinstance(port, dict) and port.get("hostPort"):
                messages.append(
                    f"{resource_name(doc)} container '{c.get('name', '<unnamed>')}' "
                    f"must not expose hostPort {port['hostPort']}"
                )
    return messages


@kubernetes_security.deny
def deny_default_namespace(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) not in NAMESPACED_KINDS:
        return []
    namespace = metadata(doc).get("namespace")
    if not namespace:
        return [f"{resource_name(doc)} must declare an explicit namespace"]
    if namespace == "default":
        return [f"{resource_name(doc)} must not be deployed to the default namespace"]
    return []


@kubernetes_security.deny
def deny_service_account_token_automount(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    spec = pod_spec(doc)
    if spec is None:
        return []
    if spec.get("automountServiceAccountToken") is not False:
        return [f"{resource_name(doc)} must set automountServiceAccountToken to false"]
    return []


@kubernetes_security.deny
def deny_cluster_admin_binding(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) not in RBAC_BINDING_KINDS:
        return []
    role_ref = as_dict(doc.get("roleRef"))
    if role_ref.get("name") == "cluster-admin":
        return [f"{resource_name(doc)} must not bind the cluster-admin role"]
    return []


@kubernetes_security.deny
def deny_wildcard_rbac(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) not in RBAC_ROLE_KINDS:
        return []
    messages = []
    for index, rule in enumerate(as_list(doc.get("rules"))):
        if not isinstance(rule, dict):
            continue
        for field_name in ("verbs", "resources", "apiGroups"):
            if "*" in as_list(rule.get(field_name)):
                messages.append(
                    f"{resource_name(doc)} rule {index} must not use wildcard {field_name}"
                )
    return messages


@kubernetes_security.deny
def deny_node_port_service(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) == "Service" and as_dict(doc.get("spec")).get("type") == "NodePort":
        return [f"{resource_name(doc)} must not use type NodePort"]
    return []


@kubernetes_security.warn
def warn_load_balancer_service(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) == "Service" and as_dict(doc.get("spec")).get("type") == "LoadBalancer":
        return [f"{resource_name(doc)} uses type LoadBalancer; prefer an Ingress"]
    return []


@kubernetes_security.warn
def warn_low_replicas(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if kind(doc) != "Deployment":
        return []
    # Kubernetes defaults replicas to 1 when omitted.
    replicas = as_dict(doc.get("spec")).get("replicas", 1)
    if isinstance(replicas, int) and replicas < ctx.min_replicas:
        return [
            f"{resource_name(doc)} should run at least {ctx.min_replicas} replicas "
            f"(found {replicas})"
        ]
    return []


@kubernetes_security.warn
def warn_missing_app_label(doc: Dict[str, Any], ctx: PolicyContext) -> List[str]:
    if pod_spec(doc) is None:
        return []
    labels = dict(as_dict(metadata(doc).get("labels")))
    labels.update(as_dict(pod_metadata(doc).get("labels")))
    if not any(labels.get(name) for name in APP_LABELS):
        return [f"{resource_name(doc)} should carry an 'app.kubernetes.io/name' or 'app' label"]
    return []


__all__ = ["kubernetes_security"]
