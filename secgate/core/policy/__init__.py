# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Builtin policy packages and evaluator."""
from typing import Dict, Iterable, Optional, Sequence

from secgate.core.exceptions import ConfigurationError

from .container import container_security, split_image
from .engine import PolicyContext, PolicyEngine, PolicyPackage
from .kubernetes import kubernetes_security

PACKAGES: Dict[str, PolicyPackage] = {
    container_security.name: container_security,
    kubernetes_security.name: kubernetes_security,
}


def get_package(name: str) -> PolicyPackage:
    try:
        return PACKAGES[name]
    except KeyError:
        raise ConfigurationError(
            "policy.packages",
            f"Unknown policy package '{name}'. Available: {', '.join(sorted(PACKAGES))}",
        ) from None


def build_engine(
    packages: Optional[Iterable[str]] = None,
    trusted_registries: Sequence[str] = (),
    min_replicas: int = 2,
) -> PolicyEngine:
    """Return an engine over the named packages (all builtin packages by default)."""
    names = list(packages) if packages else list(PACKAGES)
    context = PolicyContext(trusted_registries=tuple(trusted_registries), min_replicas=min_replicas)
    return PolicyEngine([get_package(n) for n in names], context)


__all__ = [
    "PACKAGES",
    "PolicyContext",
    "PolicyEngine",
    "PolicyPackage",
    "build_engine",
    "container_security",
    "get_package",
    "kubernetes_security",
    "split_image",
]
