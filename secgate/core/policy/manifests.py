# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Accessors for pod-bearing Kubernetes manifests."""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

POD_KINDS = {"Pod", "Deployment", "StatefulSet", "DaemonSet", "ReplicaSet", "Job", "CronJob"}

NAMESPACED_KINDS = POD_KINDS | {
    "Service",
    "ConfigMap",
    "Secret",
    "ServiceAccount",
    "Ingress",
    "NetworkPolicy",
    "Role",
    "RoleBinding",
    "PersistentVolumeClaim",
    "HorizontalPodAutoscaler",
    "PodDisruptionBudget",
    "ResourceQuota",
    "LimitRange",
    "Endpoints",
}


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def kind(doc: Dict[str, Any]) -> str:
    return str(doc.get("kind") or "")


def metadata(doc: Dict[str, Any]) -> Dict[str, Any]:
    return _dict(doc.get("metadata"))


def resource_name(doc: Dict[str, Any]) -> str:
    return f"{kind(doc) or 'Resource'}/{metadata(doc).get('name', '<unnamed>')}"


def pod_spec(doc: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    k = kind(doc)
    if k not in POD_KINDS:
        return None
    spec = _dict(doc.get("spec"))
    if k == "Pod":
        return spec
    if k == "CronJob":
        spec = _dict(_dict(spec.get("jobTemplate")).get("spec"))
    return _dict(_dict(spec.get("template")).get("spec"))


def pod_metadata(doc: Dict[str, Any]) -> Dict[str, Any]:
    k = kind(doc)
    if k == "Pod":
        return metadata(doc)
    spec = _dict(doc.get("spec"))
    if k == "CronJob":
        spec = _dict(_dict(spec.get("jobTemplate")).get("spec"))
    return _dict(_dict(spec.get("template")).get("metadata"))


def containers(doc: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Yield regular, init and ephemeral containers of a pod-bearing resource."""
    spec = pod_spec(doc)
    if spec is None:
        return
    for key in ("initContainers", "containers", "ephemeralContainers"):
        for container in _list(spec.get(key)):
            if isinstance(container, dict):
                yield container


def security_context(container: Dict[str, Any]) -> Dict[str, Any]:
    return _dict(container.get("securityContext"))


def as_dict(value: Any) -> Dict[str, Any]:
    return _dict(value)


def as_list(value: Any) -> List[Any]:
    return _list(value)
