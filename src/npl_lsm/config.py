"""Configuration for npl-lsm.

Defines the settings model for server version selection, the TCP probe,
timeouts and the release repository. Config is stored at the OS-appropriate
location (via click.get_app_dir) as config.json.

Example usage:
    # Load from config file (defaults if not exists)
    settings = load_settings()

    # Persist a version selection
    save_settings(settings.model_copy(update={"version": "2024.1.3"}))
"""

from __future__ import annotations

__all__ = [
    "ServerSettings",
    "get_config_path",
    "get_root_path",
    "load_settings",
    "load_settings_strict",
    "save_settings",
]

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from npl_lsm.constants import (
    APP_NAME,
    DEFAULT_DATA_DIR,
    DEFAULT_GITHUB_REPO,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    LATEST_VERSION,
    SERVER_START_TIMEOUT_SECONDS,
    SERVER_VERSION_ENV_VAR,
    SOCKET_CONNECT_TIMEOUT_SECONDS,
)
from npl_lsm.exceptions import ConfigurationError
from npl_lsm.utils.file_helpers import get_app_dir, read_json_file, write_json_file

_logger = logging.getLogger(f"{APP_NAME}.config")

CONFIG_FILENAME = "config.json"


class ServerSettings(BaseModel):
    """Language server binary settings.

    Attributes:
        version: Selected server version tag, or "latest".
        port: TCP port of an already running server. Validated at use time
            so an out-of-range value falls back to the default port instead
            of invalidating the whole file.
        github_repo: owner/repo publishing the server releases.
        root_dir: Storage root; binaries live in <root_dir>/bin.
        connect_timeout_seconds: TCP probe timeout.
        start_timeout_seconds: Spawn + handshake budget.
        http_timeout_seconds: Release index and download request timeout.
    """

    version: str = Field(
        default=LATEST_VERSION,
        min_length=1,
        description="Server version tag or 'latest'",
    )
    port: int | None = Field(
        default=None,
        description="Port of an already running language server",
    )
    github_repo: str = Field(
        default=DEFAULT_GITHUB_REPO,
        pattern=r"^[\w.-]+/[\w.-]+$",
        description="GitHub owner/repo hosting server releases",
    )
    root_dir: str | None = Field(
        default=None,
        description="Storage root for downloaded binaries",
    )
    connect_timeout_seconds: float = Field(default=SOCKET_CONNECT_TIMEOUT_SECONDS, gt=0, le=60)
    start_timeout_seconds: float = Field(default=SERVER_START_TIMEOUT_SECONDS, gt=0, le=300)
    http_timeout_seconds: float = Field(default=DEFAULT_HTTP_TIMEOUT_SECONDS, gt=0, le=600)

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat

    @field_validator("version")
    @classmethod
    def _strip_version(cls, value: str) -> str:
        return value.strip()


def get_config_path() -> Path:
    """Get the full path to the config file.

    Returns:
        Path to config.json in the config directory.
    """
    return get_app_dir() / CONFIG_FILENAME


def get_root_path(settings: ServerSettings) -> Path:
    """Resolve the storage root for binaries and the version registry.

    Args:
        settings: Loaded settings.

    Returns:
        Configured root_dir (user-expanded) or the platform data directory.
    """
    if settings.root_dir:
        return Path(settings.root_dir).expanduser()
    return Path(DEFAULT_DATA_DIR)


def _apply_env_overrides(settings: ServerSettings) -> ServerSettings:
    env_version = os.environ.get(SERVER_VERSION_ENV_VAR, "").strip()
    if env_version:
        return settings.model_copy(update={"version": env_version})
    return settings


def load_settings(config_path: Path | None = None) -> ServerSettings:
    """Load settings from file.

    If the config file doesn't exist, returns default settings.
    Invalid JSON or validation errors return defaults with a warning.

    Args:
        config_path: Override config location (defaults to get_config_path()).

    Returns:
        ServerSettings: Loaded or default settings, with environment overrides.
    """
    config_path = config_path or get_config_path()

    if not config_path.exists():
        return _apply_env_overrides(ServerSettings())

    try:
        settings = ServerSettings.model_validate(read_json_file(config_path))
    except json.JSONDecodeError as e:
        _logger.warning(
            {
                "event": "config_invalid_json",
                "message": f"Invalid JSON in config, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        settings = ServerSettings()
    except ValidationError as e:
        _logger.warning(
            {
                "event": "config_validation_failed",
                "message": f"Invalid config values, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        settings = ServerSettings()
    except OSError as e:
        _logger.warning(
            {
                "event": "config_read_failed",
                "message": f"Failed to read config file, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        settings = ServerSettings()

    return _apply_env_overrides(settings)


def load_settings_strict(config_path: Path | None = None) -> ServerSettings:
    """Load settings, raising on any error.

    Unlike load_settings(), a present-but-broken file raises. A missing file
    still yields defaults.

    Raises:
        ConfigurationError: If config is unreadable, not JSON, or invalid.
    """
    config_path = config_path or get_config_path()

    if not config_path.exists():
        return _apply_env_overrides(ServerSettings())

    try:
        data = read_json_file(config_path)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    try:
        settings = ServerSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {config_path}: {e}") from e

    return _apply_env_overrides(settings)


def save_settings(settings: ServerSettings, config_path: Path | None = None) -> None:
    """Save settings to file with owner-only permissions.

    Args:
        settings: Settings to save.
        config_path: Override config location (defaults to get_config_path()).

    Raises:
        OSError: If unable to write config file.
    """
    write_json_file(config_path or get_config_path(), settings.model_dump(), secure=True)
