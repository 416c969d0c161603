# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Pipeline environment validation.

Each stage needs a fixed set of CI variables. They are checked up front so a
misconfigured job fails before any scanner runs.

Functions
---------
require_env : Return the named variables, failing on the first missing one
trivy_environment : Variables for the container scan
snyk_environment : Variables for the dependency scan
checkmarx_environment : Variables for the SAST scan
policy_environment : Variables for policy validation

Examples
--------
>>> env = require_env(["CI_PROJECT_NAME"], {"CI_PROJECT_NAME": "app"})
>>> env["CI_PROJECT_NAME"]
'app'
"""
from __future__ import annotations

import os
import re
from typing import Dict, Iterable, Mapping, Optional, Pattern

from secgate.core.exceptions import ConfigurationError, ValidationError
from secgate.core.logging_config import get_logger

logger = get_logger(__name__)

IMAGE_TAG_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
SNYK_TOKEN_PATTERN = re.compile(r"^[a-f0-9-]{36}$")

TRIVY_VARS = ("CI_REGISTRY_IMAGE", "IMAGE_TAG", "CI_PROJECT_NAME", "CI_COMMIT_SHA")
SNYK_VARS = ("SNYK_TOKEN", "CI_PROJECT_NAME", "CI_COMMIT_SHA")
CHECKMARX_VARS = (
    "CHECKMARX_URL",
    "CHECKMARX_USERNAME",
    "CHECKMARX_PASSWORD",
    "CI_PROJECT_NAME",
    "CI_COMMIT_SHA",
)
POLICY_VARS = ("CI_PROJECT_NAME", "CI_COMMIT_SHA", "CI_ENVIRONMENT_SLUG")


def require_env(
    names: Iterable[str],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Return ``{name: value}`` for every name.

    Raises
    ------
    ConfigurationError
        For the first variable that is unset or empty.
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, str] = {}
    for name in names:
        value = environ.get(name, "")
        if not value:
            raise ConfigurationError(name, f"Required environment variable {name} is not set")
        values[name] = value
    return values


def validate_format(name: str, value: str, pattern: Pattern[str], label: str) -> str:
    if not pattern.match(value):
        raise ValidationError(name, f"Invalid {label} format")
    return value


def trivy_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    values = require_env(TRIVY_VARS, environ)
    validate_format("IMAGE_TAG", values["IMAGE_TAG"], IMAGE_TAG_PATTERN, "image tag")
    logger.info("Environment validation completed")
    return values


def snyk_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    values = require_env(SNYK_VARS, environ)
    validate_format("SNYK_TOKEN", values["SNYK_TOKEN"], SNYK_TOKEN_PATTERN, "Snyk token")
    logger.info("Environment validation completed")
    return values


def checkmarx_environment(
    environ: Optional[Mapping[str, str]] = None,
    url: Optional[str] = None,
) -> Dict[str, str]:
    """`CHECKMARX_URL` is only required when no `url` is configured."""
    names = [n for n in CHECKMARX_VARS if not (url and n == "CHECKMARX_URL")]
    values = require_env(names, environ)
    if url:
        values["CHECKMARX_URL"] = url
    logger.info("Environment validation completed")
    return values


def policy_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    values = require_env(POLICY_VARS, environ)
    logger.info("Environment validation completed")
    return values


__all__ = [
    "IMAGE_TAG_PATTERN",
    "SNYK_TOKEN_PATTERN",
    "require_env",
    "validate_format",
    "trivy_environment",
    "snyk_environment",
    "checkmarx_environment",
    "policy_environment",
]
