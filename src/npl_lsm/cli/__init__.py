"""Command-line interface for npl-lsm.

Provides commands for listing and selecting server versions, downloading
and updating the server binary, cleaning old binaries, and status.
"""

from .main import cli, main

__all__ = ["cli", "main"]
