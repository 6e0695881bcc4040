"""Versions command group: list published releases, select one."""

from __future__ import annotations

__all__ = ["versions"]

import asyncio
import json
from typing import Any

import click

from npl_lsm.config import save_settings
from npl_lsm.constants import LATEST_VERSION
from npl_lsm.exceptions import OperationCancelledError, ServerBinaryDownloadError

from ..common import build_manager, echo_progress, fail, load_cli_settings
from ..styling import style_dim, style_header, style_success, style_warning


@click.group()
def versions() -> None:
    """List and select language server versions."""


@versions.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(as_json: bool) -> None:
    """List published server releases.

    The first entry is always "latest", which follows new releases.
    Installed and selected versions are marked.
    """
    settings, root = load_cli_settings()
    manager = build_manager(settings, root)
    registry = manager.registry

    releases = asyncio.run(registry.fetch_all_releases())
    installed = {record.version for record in registry.installed_records()}
    selected = registry.resolve_selected_version()

    entries: list[dict[str, Any]] = [
        {
            "version": LATEST_VERSION,
            "publishedAt": None,
            "installed": False,
            "selected": selected == LATEST_VERSION,
        }
    ]
    for release in releases:
        entries.append(
            {
                "version": release.version,
                "publishedAt": release.published_at,
                "installed": release.version in installed,
                "selected": selected == release.version,
            }
        )

    if as_json:
        click.echo(json.dumps(entries, indent=2))
        return

    click.echo(style_header("Language server versions"))
    if not releases:
        click.echo(style_warning("Could not fetch releases; only 'latest' is available"))
    for entry in entries:
        markers = []
        if entry["installed"]:
            markers.append("installed")
        if entry["selected"]:
            markers.append("selected")
        published = f"  {entry['publishedAt'][:10]}" if entry["publishedAt"] else ""
        suffix = style_dim(f"  ({', '.join(markers)})") if markers else ""
        click.echo(f"  {entry['version']:20}{published}{suffix}")


@versions.command("select")
@click.argument("version")
@click.option(
    "--download/--no-download",
    default=True,
    show_default=True,
    help="Download the selected version right away",
)
def select_cmd(version: str, download: bool) -> None:
    """Select the server VERSION to use ("latest" or a release tag)."""
    version = version.strip()
    if not version:
        fail("Version must not be empty")

    settings, root = load_cli_settings()
    settings = settings.model_copy(update={"version": version})
    try:
        save_settings(settings)
    except OSError as e:
        fail(f"Failed to save settings: {e}")
    click.echo(style_success(f"Selected server version: {version}"))

    if not download:
        return

    manager = build_manager(settings, root)
    try:
        path = asyncio.run(manager.binary_manager.download_server_binary(echo_progress, version))
    except (ServerBinaryDownloadError, OperationCancelledError) as e:
        fail(str(e))
    click.echo(style_success(f"Server binary ready at {path}"))
