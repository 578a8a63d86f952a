"""
Configuration management for Org Pulse.

Settings are resolved from, in order:
1. Values set explicitly at runtime (CLI flags)
2. Environment variables (ORG_PULSE_*)
3. .org-pulse.toml (local config)
4. pyproject.toml (project-level config)
5. Built-in defaults
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# project_root is the parent directory of org_pulse/
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_API_URL = "https://api.github.com"
# Trailing window over which activity is measured
DEFAULT_WINDOW_DAYS = 30
# Companies analyzed concurrently per window
DEFAULT_BATCH_SIZE = 5
DEFAULT_TIMEOUT = 30.0

# Global configuration for SSL verification
# Default: True (verify SSL certificates)
# Can be set to False by CLI --insecure flag
VERIFY_SSL = True

# Runtime overrides (None means "not set")
_API_URL: str | None = None
_WINDOW_DAYS: int | None = None
_BATCH_SIZE: int | None = None


def load_config_file(config_path: Path) -> dict:
    """Load a TOML configuration file."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def get_file_settings() -> dict[str, Any]:
    """
    Load the [tool.org-pulse] table from configuration files.

    Priority:
    1. .org-pulse.toml (local config, highest priority)
    2. pyproject.toml (project-level config, fallback)

    Returns:
        Settings dictionary, empty if neither file defines the table.
    """
    for filename in (".org-pulse.toml", "pyproject.toml"):
        config_path = PROJECT_ROOT / filename
        if not config_path.exists():
            continue
        settings = load_config_file(config_path).get("tool", {}).get("org-pulse", {})
        if settings:
            return settings
    return {}


def _get_int_setting(env_var: str, key: str, default: int) -> int:
    env_value = os.getenv(env_var)
    if env_value:
        try:
            return int(env_value)
        except ValueError:
            pass

    settings = get_file_settings()
    if key in settings:
        return int(settings[key])

    return default


def get_api_url() -> str:
    """
    Get the base URL of the GitHub REST API.

    Returns:
        API base URL without a trailing slash.
    """
    if _API_URL is not None:
        return _API_URL

    env_api_url = os.getenv("ORG_PULSE_API_URL")
    if env_api_url:
        return env_api_url.rstrip("/")

    settings = get_file_settings()
    if "api_url" in settings:
        return str(settings["api_url"]).rstrip("/")

    return DEFAULT_API_URL


def set_api_url(url: str) -> None:
    """Set the API base URL explicitly."""
    global _API_URL
    _API_URL = url.rstrip("/")


def get_window_days() -> int:
    """
    Get the length of the trailing activity window in days.

    Priority:
    1. Explicitly set value via set_window_days()
    2. ORG_PULSE_WINDOW_DAYS environment variable
    3. Config files
    4. Default: 30
    """
    if _WINDOW_DAYS is not None:
        return _WINDOW_DAYS
    return _get_int_setting("ORG_PULSE_WINDOW_DAYS", "window_days", DEFAULT_WINDOW_DAYS)


def set_window_days(days: int) -> None:
    """Set the trailing window length explicitly."""
    global _WINDOW_DAYS
    _WINDOW_DAYS = days


def get_batch_size() -> int:
    """
    Get the number of companies analyzed concurrently.

    Priority:
    1. Explicitly set value via set_batch_size()
    2. ORG_PULSE_BATCH_SIZE environment variable
    3. Config files
    4. Default: 5
    """
    if _BATCH_SIZE is not None:
        return _BATCH_SIZE
    return _get_int_setting("ORG_PULSE_BATCH_SIZE", "batch_size", DEFAULT_BATCH_SIZE)


def set_batch_size(size: int) -> None:
    """Set the batch window size explicitly."""
    global _BATCH_SIZE
    _BATCH_SIZE = size


def get_timeout() -> float:
    """Get the per-request timeout in seconds."""
    env_timeout = os.getenv("ORG_PULSE_TIMEOUT")
    if env_timeout:
        try:
            return float(env_timeout)
        except ValueError:
            pass

    settings = get_file_settings()
    if "timeout" in settings:
        return float(settings["timeout"])

    return DEFAULT_TIMEOUT


def set_verify_ssl(verify: bool) -> None:
    """
    Set the SSL verification setting globally.

    Args:
        verify: Whether to verify SSL certificates.
    """
    global VERIFY_SSL
    VERIFY_SSL = verify


def get_verify_ssl() -> bool:
    """
    Get the current SSL verification setting.

    Returns:
        Whether SSL verification is enabled.
    """
    if not VERIFY_SSL:
        return False
    return bool(get_file_settings().get("verify_ssl", True))


def reset_overrides() -> None:
    """Clear all runtime overrides."""
    global VERIFY_SSL, _API_URL, _WINDOW_DAYS, _BATCH_SIZE
    VERIFY_SSL = True
    _API_URL = None
    _WINDOW_DAYS = None
    _BATCH_SIZE = None
