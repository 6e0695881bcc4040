"""Helpers shared by CLI commands: settings, manager wiring, progress output."""

from __future__ import annotations

__all__ = [
    "SYSTEM_LOG_FILENAME",
    "build_manager",
    "confirm_update",
    "echo_progress",
    "fail",
    "load_cli_settings",
]

import sys
from pathlib import Path
from typing import NoReturn

import click

from npl_lsm.config import ServerSettings, get_root_path, load_settings
from npl_lsm.models import DecisionCallback, DownloadProgress
from npl_lsm.server import ServerManager, create_server_manager
from npl_lsm.telemetry.system import configure_system_logger_file

from .styling import style_error

SYSTEM_LOG_FILENAME = "system.jsonl"


def load_cli_settings() -> tuple[ServerSettings, Path]:
    """Load settings leniently and attach the JSONL issue log under the root.

    Returns:
        Settings and the resolved storage root.
    """
    settings = load_settings()
    root = get_root_path(settings)
    configure_system_logger_file(root / "logs" / SYSTEM_LOG_FILENAME)
    return settings, root


def echo_progress(event: DownloadProgress) -> None:
    """Progress sink printing each status line."""
    if event.message:
        click.echo(event.message)


def confirm_update(assume_yes: bool) -> DecisionCallback:
    """Decision sink backed by click.confirm (or always-yes)."""

    async def decide(version: str) -> bool:
        if assume_yes:
            return True
        return click.confirm(f"Language server {version} is available. Download it now?", default=True)

    return decide


def build_manager(
    settings: ServerSettings,
    root: Path,
    decision: DecisionCallback | None = None,
) -> ServerManager:
    return create_server_manager(
        root_path=root,
        settings=settings,
        progress=echo_progress,
        decision=decision,
    )


def fail(message: str) -> NoReturn:
    """Print an error to stderr and exit with status 1."""
    click.echo(style_error(message), err=True)
    sys.exit(1)
