# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Custom exception hierarchy for SecGate.

All exceptions inherit from SecGateError so the CLI can catch every
application error with a single except clause and turn it into exit code 1.

Exception Hierarchy
-------------------
SecGateError (base)
├── ToolExecutionError
├── ParserError
├── DatabaseError
├── ConfigurationError
├── ValidationError
├── FileSystemError
├── RemoteServiceError
└── GateFailedError

Examples
--------
>>> try:
...     raise ToolExecutionError('trivy', 'exit code 2')
... except SecGateError as e:
...     print(e.tool_name)
trivy
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from secgate.core.models.schema import GateResult


class SecGateError(Exception):
    """Base exception for all SecGate errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    details : dict, optional
        Additional error context. Default is None.
    """

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ToolExecutionError(SecGateError):
    """Raised when an external tool (trivy, snyk, conftest, docker, kubectl)
    fails or returns an exit code outside its success set.

    Examples
    --------
    >>> error = ToolExecutionError('trivy', 'Command not found')
    >>> error.details['tool']
    'trivy'
    """

    def __init__(self, tool_name: str, message: str, details: dict = None):
        details = details or {}
        details['tool'] = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}", details)
        self.tool_name = tool_name


class ParserError(SecGateError):
    """Raised when scanner output cannot be parsed."""

    def __init__(self, parser_name: str, message: str, details: dict = None):
        details = details or {}
        details['parser'] = parser_name
        super().__init__(f"Parser '{parser_name}' failed: {message}", details)
        self.parser_name = parser_name


class DatabaseError(SecGateError):
    """Raised when recording gate history fails."""

    def __init__(self, operation: str, message: str, details: dict = None):
        details = details or {}
        details['operation'] = operation
        super().__init__(f"Database operation '{operation}' failed: {message}", details)
        self.operation = operation


class ConfigurationError(SecGateError):
    """Raised for invalid configuration or missing required settings.

    Missing pipeline environment variables are reported through this
    exception with the variable name as ``config_key``.

    Examples
    --------
    >>> error = ConfigurationError('SNYK_TOKEN', 'Required environment variable is not set')
    >>> error.config_key
    'SNYK_TOKEN'
    """

    def __init__(self, config_key: str, message: str, details: dict = None):
        details = details or {}
        details['config_key'] = config_key
        super().__init__(f"Configuration error for '{config_key}': {message}", details)
        self.config_key = config_key


class ValidationError(SecGateError):
    """Raised when input data fails validation (image tags, token formats)."""

    def __init__(self, field: str, message: str, details: dict = None):
        details = details or {}
        details['field'] = field
        super().__init__(f"Validation failed for '{field}': {message}", details)
        self.field = field


class FileSystemError(SecGateError):
    """Raised when an expected file or directory is missing or unreadable."""

    def __init__(self, path: str, message: str, details: dict = None):
        details = details or {}
        details['path'] = path
        super().__init__(f"File system error for '{path}': {message}", details)
        self.path = path


class RemoteServiceError(SecGateError):
    """Raised when a remote API answers with an unexpected HTTP status.

    Parameters
    ----------
    service : str
        Service name (e.g. 'checkmarx').
    operation : str
        What was being attempted.
    status_code : int, optional
        HTTP status returned by the server.
    """

    def __init__(
        self,
        service: str,
        operation: str,
        status_code: int = None,
        details: dict = None,
    ):
        details = details or {}
        details['service'] = service
        details['status_code'] = status_code
        suffix = f" with HTTP code: {status_code}" if status_code is not None else ""
        super().__init__(f"{service}: {operation} failed{suffix}", details)
        self.service = service
        self.status_code = status_code


class GateFailedError(SecGateError):
    """Raised when a security gate blocks the pipeline.

    Attributes
    ----------
    result : GateResult
        The evaluated gate, including every failing check.
    """

    def __init__(self, result: "GateResult"):
        failed = [c.metric for c in result.checks if c.blocking and not c.passed]
        super().__init__(
            f"{result.gate} security gate failed: {', '.join(failed)}",
            {'gate': result.gate, 'failed_checks': failed},
        )
        self.result = result
