"""Sync commands for the CodeSync CLI.

Commands:
- sync: Run the sync loop (or a single pass with --once)
- status: Show the persisted sync session
"""

from __future__ import annotations

import difflib
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click

from codesync.client.cli.config import (
    build_server_config,
    build_sync_config,
    get_state_db,
    get_sync_folder,
    load_config,
)

if TYPE_CHECKING:
    from codesync.client.sync import Conflict, SyncScheduler, SyncSuccess

# Seconds between checks of the scheduler state from the main thread
POLL_INTERVAL = 0.5

DIFF_PREVIEW_LINES = 20


def configure_logging(verbose: bool) -> None:
    """Route codesync log records to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    codesync_logger = logging.getLogger("codesync")
    for existing in codesync_logger.handlers[:]:
        codesync_logger.removeHandler(existing)
    codesync_logger.addHandler(handler)
    codesync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    codesync_logger.propagate = False


def format_timestamp(timestamp: float | None) -> str:
    """Render a Unix timestamp for humans."""
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def show_conflict(conflict: Conflict) -> None:
    """Print a short remote-vs-local diff of a conflict."""
    click.echo(click.style(f"\nConflict: {conflict.name}", fg="yellow", bold=True))
    diff = list(
        difflib.unified_diff(
            conflict.remote_content.splitlines(),
            conflict.local_content.splitlines(),
            fromfile="remote",
            tofile="local",
            lineterm="",
        )
    )
    for line in diff[:DIFF_PREVIEW_LINES]:
        if line.startswith("+") and not line.startswith("+++"):
            click.echo(click.style(f"  {line}", fg="green"))
        elif line.startswith("-") and not line.startswith("---"):
            click.echo(click.style(f"  {line}", fg="red"))
        else:
            click.echo(f"  {line}")
    if len(diff) > DIFF_PREVIEW_LINES:
        click.echo(f"  ... ({len(diff) - DIFF_PREVIEW_LINES} more lines)")


def resolve_interactively(scheduler: SyncScheduler) -> bool:
    """Ask the user about every live conflict, then re-run the pass.

    Returns:
        True if every conflict was resolved and the pass re-ran.
    """
    for conflict in scheduler.conflicts:
        show_conflict(conflict)
        choice = click.prompt(
            "Keep [l]ocal, [r]emote, or [s]kip",
            type=click.Choice(["l", "r", "s"]),
            default="s",
        )
        if choice == "s":
            continue
        scheduler.resolve_conflict(conflict.name, keep_local=choice == "l")

    if scheduler.conflicts:
        return False
    return scheduler.sync_now()


@click.command()
@click.option(
    "--directory",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Sync folder (default: the configured one).",
)
@click.option("--once", is_flag=True, help="Run a single pass and exit.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def sync(directory: Path | None, once: bool, verbose: bool) -> None:
    """Synchronize the local folder with the remote store.

    Runs a pass immediately, then keeps polling until Ctrl+C. Conflicts
    are shown as diffs and you choose which side to keep.
    """
    from codesync.client.api import DocumentClient
    from codesync.client.notifications import (
        notify_conflict,
        notify_error,
        notify_sync_complete,
    )
    from codesync.client.state import SyncStateStore
    from codesync.client.sync import SyncScheduler
    from codesync.core.types import SyncState

    configure_logging(verbose)

    config = load_config()
    try:
        server_config = build_server_config(config)
        sync_config = build_sync_config(config)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    folder = (directory or get_sync_folder()).expanduser().resolve()
    if not folder.exists():
        folder.mkdir(parents=True)
        click.echo(f"Created sync folder: {folder}")

    errors_shown: list[str] = []

    def on_complete(result: SyncSuccess) -> None:
        report = result.report
        errors_shown.clear()
        for name in report.uploaded:
            click.echo(f"  ↑ {name}")
        for name in report.downloaded:
            click.echo(f"  ↓ {name}")
        for name in report.deleted:
            click.echo(f"  ✗ {name}")
        for name in report.auto_resolved:
            click.echo(click.style(f"  ! {name} changed on both sides, kept local", fg="yellow"))
        for name, message in report.errors.items():
            click.echo(click.style(f"  ✗ {name}: {message}", fg="red"))
        if sync_config.notifications:
            notify_sync_complete(len(report.uploaded), len(report.downloaded))

    def on_conflicts(conflicts: list[Conflict]) -> None:
        if sync_config.notifications:
            notify_conflict([c.name for c in conflicts])

    def on_error(message: str) -> None:
        # Show each outage once, not on every retry
        if errors_shown and errors_shown[-1] == message:
            return
        errors_shown.append(message)
        click.echo(click.style(f"Sync error: {message} (retrying)", fg="red"), err=True)
        if sync_config.notifications:
            notify_error(message)

    client = DocumentClient(server_config)
    store = SyncStateStore(get_state_db())
    scheduler = SyncScheduler(
        client,
        store,
        sync_config,
        on_complete=on_complete,
        on_conflicts=on_conflicts,
        on_error=on_error,
    )

    click.echo(f"Syncing with {server_config.server_url}...")
    click.echo(f"Sync folder: {folder}\n")

    exit_code = 0
    try:
        scheduler.start(folder, schedule=not once)

        if once:
            if scheduler.state is SyncState.CONFLICT_PENDING and not resolve_interactively(
                scheduler
            ):
                click.echo(click.style("\nConflicts left unresolved.", fg="yellow"))
                exit_code = 1
            elif scheduler.state is SyncState.ERROR:
                exit_code = 1
            else:
                click.echo("Sync complete.")
        else:
            click.echo("Watching for changes... (Ctrl+C to stop)\n")
            while True:
                if scheduler.state is SyncState.CONFLICT_PENDING and not resolve_interactively(
                    scheduler
                ):
                    click.echo("Skipped conflicts will be offered again on the next pass.")
                    scheduler.abandon_conflicts()
                time.sleep(POLL_INTERVAL)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        exit_code = 1
    finally:
        scheduler.stop()
        store.close()
        client.close()

    if exit_code:
        sys.exit(exit_code)


@click.command()
def status() -> None:
    """Show the persisted sync session."""
    from codesync.client.state import MappingStatus, SyncStateStore

    state_db = get_state_db()
    if not state_db.exists():
        click.echo("No sync session yet. Run 'codesync sync' first.")
        return

    store = SyncStateStore(state_db)
    try:
        state = store.load()
    finally:
        store.close()

    click.echo(f"Directory:   {state.directory or '(not set)'}")
    click.echo(f"Last sync:   {format_timestamp(state.last_sync_timestamp)}")
    click.echo(
        "Conflicts:   "
        + ("local edits win" if state.has_completed_initial_resolution else "prompt on divergence")
    )
    click.echo(f"Files:       {len(state.mappings)}")

    colors = {
        MappingStatus.SYNCED: "green",
        MappingStatus.SYNCING: "blue",
        MappingStatus.CONFLICT: "yellow",
        MappingStatus.ERROR: "red",
    }
    for mapping in state.mappings:
        line = f"  {mapping.status.value:<9} {mapping.local_path}"
        if mapping.error_message:
            line += f" ({mapping.error_message})"
        click.echo(click.style(line, fg=colors[mapping.status]))
