# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Configuration schema and validation for SecGate.

This module defines the configuration structure, default values, and
validation logic for all application settings. Each section is a dataclass
with a ``validate()`` method that returns a list of error strings.

Classes
-------
Config : Main configuration class
ProjectConfig : Project paths and identity
GatesConfig : Security gate thresholds
ToolsConfig : External tool commands and timeouts
CheckmarxConfig : Checkmarx REST client settings
PolicyConfig : Policy evaluator settings
DatabaseConfig : Gate history database
LoggingConfig : Logging configuration
GitOpsConfig : GitOps workflow settings

Examples
--------
>>> config = Config.from_dict({"gates": {"trivy_high": 5}})
>>> config.gates.trivy_high
5
>>> config.validate()
True

See Also
--------
secgate.config.config_loader : Configuration loading
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from secgate.core.exceptions import ConfigurationError


@dataclass
class ProjectConfig:
    """Configuration for project paths and identity."""

    root: str = "."
    results_dir: str = "security-reports"
    name: Optional[str] = None
    exclude_patterns: List[str] = field(default_factory=lambda: [
        ".git",
        "node_modules",
        "vendor",
        "test",
        "tests",
        "*.min.js",
        "*.log",
        "coverage",
        "reports",
    ])

    def validate(self) -> List[str]:
        errors = []
        root_path = Path(self.root)
        if not root_path.exists():
            errors.append(f"Project root does not exist: {self.root}")
        elif not root_path.is_dir():
            errors.append(f"Project root is not a directory: {self.root}")
        return errors


@dataclass
class GatesConfig:
    """Maximum allowed finding counts per gate.

    A gate check passes when the observed count is lower than or equal to
    the threshold. ``trivy_config`` and ``policy_warnings`` only warn.
    """

    trivy_critical: int = 0
    trivy_high: int = 3
    trivy_secrets: int = 0
    trivy_config: int = 10
    snyk_critical: int = 0
    snyk_high: int = 10
    snyk_license: int = 0
    checkmarx_critical: int = 0
    checkmarx_high: int = 5
    policy_violations: int = 0
    policy_warnings: int = 10
    build_critical: int = 0
    build_high: int = 5

    def validate(self) -> List[str]:
        errors = []
        for name, value in asdict(self).items():
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"gates.{name} must be an integer, got {value!r}")
            elif value < 0:
                errors.append(f"gates.{name} must be >= 0, got {value}")
        return errors


@dataclass
class ToolsConfig:
    """Commands and limits for external tools."""

    trivy: str = "trivy"
    snyk: str = "snyk"
    conftest: str = "conftest"
    docker: str = "docker"
    kubectl: str = "kubectl"
    argocd: str = "argocd"
    git: str = "git"
    cosign: str = "cosign"
    syft: str = "syft"
    timeout: int = 1800  # seconds
    trivy_timeout: str = "10m"
    trivy_cache_dir: str = ".trivy-cache"
    memory_limit_mb: Optional[int] = None

    def validate(self) -> List[str]:
        errors = []
        if self.timeout < 1:
            errors.append(f"timeout must be >= 1, got {self.timeout}")
        if self.memory_limit_mb is not None and self.memory_limit_mb < 64:
            errors.append(f"memory_limit_mb must be >= 64, got {self.memory_limit_mb}")
        return errors


@dataclass
class CheckmarxConfig:
    """Checkmarx SAST REST API client settings."""

    url: Optional[str] = None
    team_id: int = 1
    poll_interval: int = 30  # seconds
    scan_timeout: int = 7200  # seconds
    request_timeout: int = 120  # seconds
    verify_ssl: bool = True
    incremental: bool = True

    def validate(self) -> List[str]:
        errors = []
        if self.url and not self.url.startswith(("http://", "https://")):
            errors.append(f"checkmarx.url must be an http(s) URL, got {self.url}")
        if self.poll_interval < 1:
            errors.append(f"poll_interval must be >= 1, got {self.poll_interval}")
        if self.scan_timeout < self.poll_interval:
            errors.append("scan_timeout must be >= poll_interval")
        return errors


@dataclass
class PolicyConfig:
    """Policy evaluation settings."""

    engine: str = "builtin"
    packages: List[str] = field(default_factory=lambda: [
        "container-security",
        "kubernetes-security",
    ])
    policies_dir: str = "policies"
    manifests_dir: str = "k8s"
    trusted_registries: List[str] = field(default_factory=list)
    min_replicas: int = 2

    def validate(self) -> List[str]:
        errors = []
        if self.engine not in {"builtin", "conftest"}:
            errors.append(f"Invalid policy engine: {self.engine}")
        valid_packages = {"container-security", "kubernetes-security"}
        for package in self.packages:
            if package not in valid_packages:
                errors.append(f"Unknown policy package: {package}")
        if self.min_replicas < 1:
            errors.append(f"min_replicas must be >= 1, got {self.min_replicas}")
        return errors


@dataclass
class DatabaseConfig:
    """Configuration for the gate history database."""

    enabled: bool = False
    path: str = "security-reports/secgate.db"
    echo: bool = False

    def validate(self) -> List[str]:
        errors = []
        if self.enabled and not self.path:
            errors.append("database.path must be set when the database is enabled")
        return errors


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    file: str = "logs/secgate.log"
    console: bool = True
    file_output: bool = True
    max_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5

    def validate(self) -> List[str]:
        errors = []
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(self.level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {self.level}")
        if self.max_bytes < 1024:
            errors.append(f"max_bytes too small: {self.max_bytes}")
        if self.backup_count < 0:
            errors.append(f"backup_count must be >= 0, got {self.backup_count}")
        return errors


@dataclass
class GitOpsConfig:
    """GitOps promotion, rollback and preview environment settings."""

    overlays_dir: str = "k8s/overlays"
    argocd_namespace: str = "argocd"
    argocd_project: str = "devsecops-project"
    namespace_prefix: str = "devsecops"
    app_suffix: str = "devsecops-app"
    git_remote: str = "origin"
    git_branch: str = "main"
    repo_url: str = "https://github.com/ruslanbaba/Secure-DevSecOps-Pipeline"
    preview_path: str = "k8s/overlays/development"

    def validate(self) -> List[str]:
        errors = []
        if not self.overlays_dir:
            errors.append("gitops.overlays_dir must not be empty")
        if not self.git_remote or not self.git_branch:
            errors.append("gitops.git_remote and gitops.git_branch must be set")
        return errors


SECTIONS = {
    "project": ProjectConfig,
    "gates": GatesConfig,
    "tools": ToolsConfig,
    "checkmarx": CheckmarxConfig,
    "policy": PolicyConfig,
    "database": DatabaseConfig,
    "logging": LoggingConfig,
    "gitops": GitOpsConfig,
}


@dataclass
class Config:
    """
    Main configuration class for SecGate.

    This class aggregates all configuration sections and provides
    validation and loading functionality.
    """

    project: ProjectConfig = field(default_factory=ProjectConfig)
    gates: GatesConfig = field(default_factory=GatesConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    checkmarx: CheckmarxConfig = field(default_factory=CheckmarxConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    gitops: GitOpsConfig = field(default_factory=GitOpsConfig)

    def validate(self) -> bool:
        """
        Validate entire configuration.

        Returns:
            True if valid

        Raises:
            ConfigurationError: If any section reports errors
        """
        all_errors: List[str] = []
        for section in SECTIONS:
            all_errors.extend(getattr(self, section).validate())

        if all_errors:
            error_msg = "\n".join(f"  - {err}" for err in all_errors)
            raise ConfigurationError(
                "configuration",
                f"Configuration validation failed:\n{error_msg}",
                {"errors": all_errors}
            )
        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "Config":
        """
        Create configuration from dictionary.

        Unknown sections are ignored; unknown keys inside a known section
        raise ConfigurationError.
        """
        sections = {}
        for name, section_cls in SECTIONS.items():
            values = config_dict.get(name) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(name, f"Section must be a mapping, got {type(values).__name__}")
            try:
                sections[name] = section_cls(**values)
            except TypeError as e:
                raise ConfigurationError(name, f"Invalid option: {e}") from e
        return cls(**sections)


def get_default_config() -> Config:
    return Config()
