"""Download command: fetch (or reuse) a server binary."""

from __future__ import annotations

__all__ = ["download"]

import asyncio

import click

from npl_lsm.exceptions import OperationCancelledError, ServerBinaryDownloadError

from ..common import build_manager, echo_progress, fail, load_cli_settings
from ..styling import style_success


@click.command()
@click.option("--version", "version", default=None, help="Version tag or 'latest' (default: selected)")
def download(version: str | None) -> None:
    """Download the language server binary.

    An already installed binary of the same version is reused.

    Examples:
        npl-lsm download                     # Selected version
        npl-lsm download --version 2024.1.3  # Specific release
    """
    settings, root = load_cli_settings()
    manager = build_manager(settings, root)

    try:
        path = asyncio.run(manager.binary_manager.download_server_binary(echo_progress, version))
    except (ServerBinaryDownloadError, OperationCancelledError) as e:
        fail(str(e))

    click.echo(style_success(f"Server binary ready at {path}"))
