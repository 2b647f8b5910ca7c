"""Command-line interface for CodeSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Configure the remote store and the sync folder
- reset: Forget the persisted sync session
- sync: Synchronize the folder with the remote store
- status: Show the persisted sync session
- remote: Inspect or delete remote documents
- server: Run the reference document store
"""

from __future__ import annotations

import click

from codesync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    get_sync_folder,
    load_config,
    save_config,
)
from codesync.client.cli.init import init, reset
from codesync.client.cli.remote import remote
from codesync.client.cli.server import server
from codesync.client.cli.sync import status, sync


@click.group()
@click.version_option(package_name="codesync")
def cli() -> None:
    """CodeSync - two-way sync between a remote document store and a local folder."""


# Setup commands
cli.add_command(init)
cli.add_command(reset)

# Sync commands
cli.add_command(sync)
cli.add_command(status)

# Remote store commands
cli.add_command(remote)
cli.add_command(server)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "get_state_db",
    "get_sync_folder",
    "load_config",
    "save_config",
]
