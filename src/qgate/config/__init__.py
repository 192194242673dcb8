"""
Configuration management for qgate.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Project .env file (.qgate/.env)
3. Global config file (~/.qgate/config.yml)
4. Default values (lowest priority)
"""

from .env_loader import (
    find_project_dir,
    is_global_config_dir,
    load_env_file,
    load_global_config,
    load_project_config,
)
from .getters import (
    ENV_KEYS,
    get_config,
    get_log_level,
    get_work_dir,
    load_scan_configuration,
)

__all__ = [
    # env_loader
    "find_project_dir",
    "is_global_config_dir",
    "load_env_file",
    "load_global_config",
    "load_project_config",
    # getters
    "ENV_KEYS",
    "get_config",
    "get_log_level",
    "get_work_dir",
    "load_scan_configuration",
]
