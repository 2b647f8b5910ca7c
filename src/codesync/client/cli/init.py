"""Setup commands for the CodeSync CLI.

Commands:
- init: Point CodeSync at a remote store and a local folder
- reset: Forget the persisted sync session
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from codesync.client.cli.config import (
    build_server_config,
    get_config_dir,
    get_state_db,
    load_config,
    save_config,
)


@click.command()
@click.argument("directory", type=click.Path(file_okay=False, path_type=Path))
@click.option("--server", "server_url", required=True, help="Remote store URL.")
@click.option("--token", default=None, help="Bearer token for the remote store.")
@click.option(
    "--sync-interval",
    type=float,
    default=None,
    help="Seconds between full reconciliation passes.",
)
@click.option(
    "--local-check-interval",
    type=float,
    default=None,
    help="Seconds between checks for local changes.",
)
@click.option(
    "--no-notifications",
    is_flag=True,
    help="Disable desktop notifications.",
)
def init(
    directory: Path,
    server_url: str,
    token: str | None,
    sync_interval: float | None,
    local_check_interval: float | None,
    no_notifications: bool,
) -> None:
    """Configure the remote store and the local sync folder.

    Creates DIRECTORY if it does not exist.
    """
    from codesync.client.api import DocumentClient

    folder = directory.expanduser().resolve()
    folder.mkdir(parents=True, exist_ok=True)

    config = load_config()
    config["server_url"] = server_url.rstrip("/")
    config["sync_folder"] = str(folder)
    if token:
        config["token"] = token
    if sync_interval is not None:
        config["sync_interval"] = sync_interval
    if local_check_interval is not None:
        config["local_check_interval"] = local_check_interval
    if no_notifications:
        config["notifications"] = False

    try:
        server_config = build_server_config(config)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    save_config(config)
    click.echo(f"Configuration saved to {get_config_dir()}")
    click.echo(f"Sync folder: {folder}")

    with DocumentClient(server_config) as client:
        if client.health_check():
            click.echo(f"Remote store reachable at {server_config.server_url}")
        else:
            click.echo(
                click.style(
                    f"Warning: remote store not reachable at {server_config.server_url}",
                    fg="yellow",
                )
            )


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
def reset(yes: bool) -> None:
    """Forget the persisted sync session.

    Clears the chosen directory, file mappings and the conflict
    resolution flag. Files on both sides are left untouched.
    """
    from codesync.client.state import SyncStateStore

    state_db = get_state_db()
    if not state_db.exists():
        click.echo("Nothing to reset.")
        return

    if not yes and not click.confirm("Forget the current sync session?"):
        click.echo("Aborted.")
        return

    store = SyncStateStore(state_db)
    try:
        store.clear()
    finally:
        store.close()
    click.echo("Sync session cleared.")
