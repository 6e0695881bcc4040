"""Main CLI entry point for npl-lsm.

Defines the CLI group and registers all subcommands.

Commands:
    versions  - Published releases (list, select)
    download  - Download or reuse a server binary
    update    - Check for and install a newer server
    clean     - Remove untracked (or all) binaries
    status    - Installed versions and TCP server reachability

Subcommand help:
    npl-lsm COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys

import click

from npl_lsm import __version__

from .commands.clean import clean
from .commands.download import download
from .commands.status import status
from .commands.update import update
from .commands.versions import versions


class ReorderedGroup(click.Group):
    """Group that prints environment overrides after the command list."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        formatter.write(
            """
Quick Start:
  npl-lsm versions list            Show published releases
  npl-lsm versions select latest   Track the newest release
  npl-lsm download                 Install the selected version

Environment:
  NPL_SERVER_VERSION   Override the selected version
  NPL_SERVER_PORT      Port of an already running language server
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """npl-lsm: NPL language server binary manager."""
    if version:
        click.echo(f"npl-lsm {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(clean)
cli.add_command(download)
cli.add_command(status)
cli.add_command(update)
cli.add_command(versions)


def main() -> None:
    """CLI entry point."""
    cli()
