"""Remote store commands for the CodeSync CLI.

Commands:
- remote ls: List documents in the remote store
- remote rm: Delete a document from the remote store
"""

from __future__ import annotations

import sys

import click

from codesync.client.cli.config import build_server_config, load_config


@click.group()
def remote() -> None:
    """Inspect the remote document store.

    Sync never deletes remote documents; use 'remote rm' once a file is
    gone locally and should be gone remotely too.
    """


@remote.command("ls")
def list_remote() -> None:
    """List documents in the remote store."""
    from codesync.client.api import DocumentClient, RemoteError

    try:
        server_config = build_server_config(load_config())
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with DocumentClient(server_config) as client:
        try:
            files = client.list_files()
        except RemoteError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if not files:
        click.echo("No documents.")
        return
    for remote_file in sorted(files, key=lambda f: f.name):
        click.echo(f"{remote_file.identity}  {len(remote_file.content):>8}  {remote_file.name}")


@remote.command("rm")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
def remove_remote(name: str, yes: bool) -> None:
    """Delete document NAME from the remote store."""
    from codesync.client.api import DocumentClient, NotFoundError, RemoteError

    try:
        server_config = build_server_config(load_config())
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not yes and not click.confirm(f"Delete '{name}' from the remote store?"):
        click.echo("Aborted.")
        return

    with DocumentClient(server_config) as client:
        try:
            client.delete(name)
        except NotFoundError:
            click.echo(f"Error: no remote document named '{name}'", err=True)
            sys.exit(1)
        except RemoteError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Deleted {name}")
