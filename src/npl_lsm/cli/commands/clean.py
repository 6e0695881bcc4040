"""Clean command: remove untracked or all server binaries."""

from __future__ import annotations

__all__ = ["clean"]

import click

from ..common import build_manager, load_cli_settings
from ..styling import style_dim, style_success


@click.command()
@click.option("--all", "remove_all", is_flag=True, help="Also remove installed binaries and forget them")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip confirmation for --all")
def clean(remove_all: bool, assume_yes: bool) -> None:
    """Remove server binaries.

    Without --all: deletes files in the binary directory that no installed
    version refers to. With --all: deletes every binary and resets the
    version registry.
    """
    settings, root = load_cli_settings()
    binary_manager = build_manager(settings, root).binary_manager

    if remove_all:
        if not assume_yes and not click.confirm(
            f"Remove all server binaries in {binary_manager.registry.bin_dir}?", default=False
        ):
            click.echo("Cancelled.")
            return
        removed = binary_manager.clean_all_binaries()
    else:
        removed = binary_manager.clean_unused_binaries()

    if not removed:
        click.echo(style_dim("Nothing to remove."))
        return
    for path in removed:
        click.echo(f"  removed {path}")
    click.echo(style_success(f"Removed {len(removed)} file(s)"))
