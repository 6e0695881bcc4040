"""Status command: local installation state and TCP server reachability."""

from __future__ import annotations

__all__ = ["status"]

import asyncio
import json
from typing import Any

import click

from npl_lsm.server import ServerManager

from ..common import build_manager, load_cli_settings
from ..styling import style_dim, style_header, style_label


async def _probe(manager: ServerManager) -> bool:
    streams = await manager.tcp.connect_to_existing_server()
    if streams is None:
        return False
    await streams.close()
    return True


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show installed server versions and whether a TCP server is running."""
    settings, root = load_cli_settings()
    manager = build_manager(settings, root)
    registry = manager.registry

    installed = registry.installed_records()
    latest = registry.find_latest_installed()
    port = manager.tcp.get_server_port()

    result: dict[str, Any] = {
        "root": str(root),
        "bin_dir": str(registry.bin_dir),
        "selected_version": registry.resolve_selected_version(),
        "installed": [record.to_json_dict() for record in installed],
        "active_version": latest.version if latest else None,
        "port": port,
        "tcp_server_running": asyncio.run(_probe(manager)),
    }

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(style_header("npl-lsm status"))
    click.echo(f"{style_label('Storage root')} {result['root']}")
    click.echo(f"{style_label('Selected version')} {result['selected_version']}")
    click.echo(f"{style_label('Active version')} {result['active_version'] or '-'}")
    running = click.style("running", fg="green") if result["tcp_server_running"] else "not running"
    click.echo(f"{style_label('TCP server')} localhost:{port} ({running})")
    click.echo()
    click.echo(style_label("Installed versions"))
    if not installed:
        click.echo(style_dim("  No versions installed. Run 'npl-lsm download'."))
    for record in installed:
        date = f"  {record.release_date[:10]}" if record.release_date else ""
        click.echo(f"  {record.version:20}{date}  {record.installed_path}")
