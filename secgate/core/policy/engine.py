# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Declarative policy evaluation for Kubernetes manifests.

The model mirrors conftest/Rego packages: a package is a named set of
``deny`` and ``warn`` rules. Each rule inspects one input document and
returns the messages it wants to emit. A document is allowed only when no
deny rule fired across every enabled package (default deny).

Classes
-------
PolicyPackage : Named rule set with deny/warn registries
PolicyEngine : Evaluates documents and YAML files against packages

Examples
--------
>>> pkg = PolicyPackage("example")
>>> @pkg.deny
... def _no_latest(doc, ctx):
...     return ["uses latest"] if doc.get("image", "").endswith(":latest") else []
>>> engine = PolicyEngine([pkg])
>>> engine.evaluate({"image": "nginx:latest"}, "x.yaml").allow
False
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from secgate.core.exceptions import ParserError
from secgate.core.logging_config import get_logger
from secgate.core.models.schema import PolicyDecision, PolicyMessage

logger = get_logger(__name__)

Rule = Callable[[Dict[str, Any], "PolicyContext"], Iterable[str]]


@dataclass
class PolicyContext:
    """Per-evaluation settings that rules may consult."""

    trusted_registries: Sequence[str] = ()
    min_replicas: int = 2


@dataclass
class PolicyPackage:
    name: str
    deny_rules: List[Rule] = field(default_factory=list)
    warn_rules: List[Rule] = field(default_factory=list)

    def deny(self, rule: Rule) -> Rule:
        self.deny_rules.append(rule)
        return rule

    def warn(self, rule: Rule) -> Rule:
        self.warn_rules.append(rule)
        return rule

    @property
    def rule_count(self) -> int:
        return len(self.deny_rules) + len(self.warn_rules)


class PolicyEngine:
    """Evaluate manifests against a set of policy packages."""

    def __init__(
        self,
        packages: Sequence[PolicyPackage],
        context: Optional[PolicyContext] = None,
    ) -> None:
        self.packages = list(packages)
        self.context = context or PolicyContext()

    def evaluate(self, doc: Dict[str, Any], filename: str = "") -> PolicyDecision:
        metadata = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
        decision = PolicyDecision(
            filename=filename,
            namespace=",".join(p.name for p in self.packages) or "main",
            kind=doc.get("kind"),
            name=metadata.get("name"),
        )
        for package in self.packages:
            for rule in package.deny_rules:
                messages = list(rule(doc, self.context) or [])
                decision.failures.extend(
                    PolicyMessage(msg=m, rule=f"{package.name}.{rule.__name__}") for m in messages
                )
                if not messages:
                    decision.successes += 1
            for rule in package.warn_rules:
                messages = list(rule(doc, self.context) or [])
                decision.warnings.extend(
                    PolicyMessage(msg=m, rule=f"{package.name}.{rule.__name__}") for m in messages
                )
                if not messages:
                    decision.successes += 1
        return decision

    def evaluate_documents(
        self, docs: Iterable[Any], filename: str = ""
    ) -> List[PolicyDecision]:
        decisions = []
        for doc in docs:
            if not doc:
                continue
            if not isinstance(doc, dict):
                raise ParserError("policy", f"{filename}: document is not a mapping")
            decisions.append(self.evaluate(doc, filename))
        return decisions

    def evaluate_file(self, path: Union[str, Path]) -> List[PolicyDecision]:
        """Evaluate every YAML document in `path`; empty documents are skipped."""
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as fh:
                docs = list(yaml.safe_load_all(fh))
        except yaml.YAMLError as e:
            raise ParserError("policy", f"Failed to parse YAML in {path}: {e}") from e
        decisions = self.evaluate_documents(docs, str(path))
        logger.debug("Evaluated %d document(s) in %s", len(decisions), path)
        return decisions


__all__ = ["PolicyContext", "PolicyPackage", "PolicyEngine", "Rule"]
