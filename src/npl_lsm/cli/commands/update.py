"""Update command: check for a newer server and install it on confirmation."""

from __future__ import annotations

__all__ = ["update"]

import asyncio

import click

from ..common import build_manager, confirm_update, load_cli_settings
from ..styling import style_dim, style_success


@click.command()
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Install without asking")
def update(assume_yes: bool) -> None:
    """Check for a newer language server release.

    Asks before downloading unless --yes is given. Failures of the check are
    logged and reported as "no update".
    """
    settings, root = load_cli_settings()
    manager = build_manager(settings, root, decision=confirm_update(assume_yes))

    if asyncio.run(manager.updates.check_for_updates()):
        click.echo(style_success("Language server updated"))
    else:
        click.echo(style_dim("No update installed."))
