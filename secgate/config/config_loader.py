# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""Configuration loader for SecGate.

This module handles loading configuration from multiple sources with
well-defined precedence rules.

Configuration Sources
---------------------
Priority order (highest to lowest):

1. Command-line arguments (highest priority)
2. Environment variables (prefixed with SECGATE_)
3. Configuration file (YAML or TOML)
4. Default values (lowest priority)

A ``.env`` file in the working directory is loaded first with
python-dotenv; variables already present in the environment win.

Supported Formats
-----------------
- YAML: .yaml, .yml files
- TOML: .toml files (tomllib on 3.11+, tomli before)

Environment Variables
---------------------
All environment variables must be prefixed with `SECGATE_`. For nested
configuration, use double underscores: `SECGATE_GATES__TRIVY_HIGH=5`.
List options take comma separated values:
`SECGATE_POLICY__TRUSTED_REGISTRIES=ghcr.io/acme,registry.acme.io`.

Examples
--------
>>> loader = ConfigLoader()
>>> config = loader.load_config('secgate.yaml')
>>> config.gates.snyk_high
10

See Also
--------
config_schema : Configuration schema definitions
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from secgate.core.exceptions import ConfigurationError
from secgate.core.logging_config import get_logger

from .config_schema import Config

logger = get_logger(__name__)

DEFAULT_CONFIG_FILES = ("secgate.yaml", "secgate.yml", "secgate.toml", ".secgate.yaml")


class ConfigLoader:
    """Configuration loader that supports multiple sources.

    Attributes
    ----------
    ENV_PREFIX : str
        Prefix for environment variables ('SECGATE_').
    config : Config
        Internal configuration object.

    Notes
    -----
    Values from the environment are coerced to the type of the option they
    override, so ``SECGATE_GATES__TRIVY_HIGH=0`` yields the integer 0.
    """

    ENV_PREFIX = "SECGATE_"

    ARG_MAPPING = {
        'root': ('project', 'root'),
        'results_dir': ('project', 'results_dir'),
        'project_name': ('project', 'name'),
        'log_level': ('logging', 'level'),
        'log_file': ('logging', 'file'),
        'db_path': ('database', 'path'),
        'db_enabled': ('database', 'enabled'),
        'timeout': ('tools', 'timeout'),
        'policy_engine': ('policy', 'engine'),
        'policies_dir': ('policy', 'policies_dir'),
        'manifests_dir': ('policy', 'manifests_dir'),
        'trusted_registries': ('policy', 'trusted_registries'),
        'checkmarx_url': ('checkmarx', 'url'),
    }

    def __init__(self):
        self.config = Config()

    def load_from_file(self, file_path: str) -> Config:
        """
        Load configuration from a YAML or TOML file.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        path = Path(file_path)

        if not path.exists():
            raise ConfigurationError(
                "file_path",
                f"Configuration file not found: {file_path}"
            )

        try:
            if path.suffix in ['.yaml', '.yml']:
                with open(path, 'r', encoding='utf-8') as f:
                    config_dict = yaml.safe_load(f) or {}
            elif path.suffix == '.toml':
                with open(path, 'rb') as f:
                    config_dict = tomllib.load(f)
            else:
                raise ConfigurationError(
                    "file_format",
                    f"Unsupported configuration file format: {path.suffix}"
                )
        except yaml.YAMLError as e:
            raise ConfigurationError(
                "yaml_parse",
                f"Failed to parse YAML configuration: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(
                "toml_parse",
                f"Failed to parse TOML configuration: {e}"
            ) from e
        except OSError as e:
            raise ConfigurationError(
                "file_load",
                f"Failed to load configuration file: {e}"
            ) from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("file_format", f"Top level of {file_path} must be a mapping")

        # Handle nested 'secgate' key if present
        if 'secgate' in config_dict:
            config_dict = config_dict['secgate']

        self.config = Config.from_dict(config_dict)
        logger.debug("Loaded configuration from %s", path)
        return self.config

    def load_from_env(self) -> Config:
        """
        Apply SECGATE_SECTION__OPTION environment variables.

        Unknown sections or options are ignored.
        """
        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX):
                continue
            parts = key[len(self.ENV_PREFIX):].lower().split('__')
            if len(parts) == 2:
                section, option = parts
                self._set_config_value(section, option, value)
        return self.config

    def load_from_args(self, args: Dict[str, Any]) -> Config:
        if not args:
            return self.config

        for arg_name, value in args.items():
            if value is not None and arg_name in self.ARG_MAPPING:
                section, option = self.ARG_MAPPING[arg_name]
                self._set_config_value(section, option, value)

        return self.config

    def load_config(
        self,
        config_file: Optional[str] = None,
        env: bool = True,
        args: Optional[Dict[str, Any]] = None,
        dotenv_path: Optional[str] = ".env",
    ) -> Config:
        """
        Load configuration from every source and validate the result.

        When `config_file` is None the first existing file from
        DEFAULT_CONFIG_FILES in the working directory is used.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if dotenv_path and Path(dotenv_path).is_file():
            load_dotenv(dotenv_path, override=False)

        self.config = Config()

        if config_file is None:
            config_file = next((f for f in DEFAULT_CONFIG_FILES if Path(f).is_file()), None)
        if config_file:
            self.load_from_file(config_file)

        if env:
            self.load_from_env()

        if args:
            self.load_from_args(args)

        self.config.validate()
        return self.config

    def _set_config_value(self, section: str, option: str, value: Any):
        if not hasattr(self.config, section):
            return
        section_obj = getattr(self.config, section)
        if not hasattr(section_obj, option):
            return
        current = getattr(section_obj, option)
        if isinstance(value, str):
            value = self._parse_value(value, current)
        setattr(section_obj, option, value)

    @staticmethod
    def _parse_value(value: str, current: Any = None) -> Any:
        """
        Parse a string to the type of the option it replaces.

        Falls back to bool/int/float/str sniffing when the current value is
        None.
        """
        if isinstance(current, bool):
            return value.lower() in ('true', '1', 'yes', 'on')
        if isinstance(current, int):
            try:
                return int(value)
            except ValueError:
                raise ConfigurationError(value, "Expected an integer value") from None
        if isinstance(current, list):
            return [item.strip() for item in value.split(',') if item.strip()]
        if isinstance(current, str):
            return value

        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            pass
        return value


def load_config(
    config_file: Optional[str] = None,
    env: bool = True,
    args: Optional[Dict[str, Any]] = None,
) -> Config:
    """Convenience function to load configuration."""
    loader = ConfigLoader()
    return loader.load_config(config_file=config_file, env=env, args=args)
