"""Configuration getter functions."""

import os
import tempfile
from pathlib import Path
from typing import Any

from qgate.environment import parse_bool
from qgate.modules.scanner.models import AuthMethod, ScanConfiguration

from .env_loader import load_global_config, load_project_config

ENV_KEYS = (
    "QGATE_AUTH_METHOD",
    "QGATE_ACCESS_TOKEN",
    "QGATE_USERNAME",
    "QGATE_PASSWORD",
    "QGATE_POD",
    "QGATE_PROXY",
    "QGATE_SKIP_TLS_VERIFY",
    "QGATE_WORK_DIR",
    "QGATE_LOG_LEVEL",
)


def get_config(key: str, project_dir: Path | None = None, default: Any = None) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable
    2. Project .env file
    3. Global config file
    4. Default value

    Args:
        key: Configuration key
        project_dir: Optional project directory
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    project_config = load_project_config(project_dir)
    if key in project_config:
        return project_config[key]

    global_config = load_global_config()
    if key in global_config:
        return global_config[key]

    return default


def get_work_dir(project_dir: Path | None = None) -> Path:
    """Directory holding the downloaded binary (default: <tmp>/qgate)."""
    configured = get_config("QGATE_WORK_DIR", project_dir)
    if configured:
        return Path(str(configured)).expanduser()
    return Path(tempfile.gettempdir()) / "qgate"


def get_log_level(project_dir: Path | None = None) -> str:
    return str(get_config("QGATE_LOG_LEVEL", project_dir, default="INFO")).upper()


def load_scan_configuration(
    project_dir: Path | None = None,
    **overrides: Any,
) -> ScanConfiguration:
    """
    Build a validated ``ScanConfiguration`` from layered settings.

    Keyword overrides (for example from CLI options) win over every source
    when they are not None.
    """

    def pick(name: str, key: str, default: Any = None) -> Any:
        value = overrides.get(name)
        if value is not None:
            return value
        return get_config(key, project_dir, default)

    skip_tls = pick("skip_tls_verify", "QGATE_SKIP_TLS_VERIFY", False)
    if not isinstance(skip_tls, bool):
        skip_tls = parse_bool(str(skip_tls))

    token = pick("access_token", "QGATE_ACCESS_TOKEN")
    default_method = AuthMethod.TOKEN if token else AuthMethod.CREDENTIALS
    method = pick("auth_method", "QGATE_AUTH_METHOD", default_method)

    return ScanConfiguration(
        auth_method=AuthMethod.parse(str(method)),
        pod=str(pick("pod", "QGATE_POD", "") or ""),
        access_token=token,
        username=pick("username", "QGATE_USERNAME"),
        password=pick("password", "QGATE_PASSWORD"),
        proxy=pick("proxy", "QGATE_PROXY"),
        verify_tls=not skip_tls,
    )
