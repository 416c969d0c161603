from .config_loader import ConfigLoader, load_config
from .config_schema import (
    CheckmarxConfig,
    Config,
    DatabaseConfig,
    GatesConfig,
    GitOpsConfig,
    LoggingConfig,
    PolicyConfig,
    ProjectConfig,
    ToolsConfig,
    get_default_config,
)

__all__ = [
    "CheckmarxConfig",
    "Config",
    "ConfigLoader",
    "DatabaseConfig",
    "GatesConfig",
    "GitOpsConfig",
    "LoggingConfig",
    "PolicyConfig",
    "ProjectConfig",
    "ToolsConfig",
    "get_default_config",
    "load_config",
]
