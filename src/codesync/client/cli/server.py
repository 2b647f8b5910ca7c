"""Document store commands for the CodeSync CLI.

Commands:
- server run: Run the reference document store
"""

from __future__ import annotations

import os
from pathlib import Path

import click


@click.group()
def server() -> None:
    """Reference document store commands."""


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to database file (default: CODESYNC_DB_PATH or ./codesync.db).",
)
@click.option(
    "--token",
    default=None,
    help="Require this bearer token (default: CODESYNC_TOKEN, or no auth).",
)
def run_server(host: str, port: int, db_path: Path | None, token: str | None) -> None:
    """Run the document store.

    Examples:

        # Local store on the default port
        codesync server run

        # Store with a token, reachable from other machines
        codesync server run --host 0.0.0.0 --token s3cret
    """
    import uvicorn

    from codesync.server.app import LOG_PATH, create_app, setup_logging
    from codesync.server.database import Database

    resolved_db_path = db_path or Path(os.environ.get("CODESYNC_DB_PATH", "codesync.db"))
    resolved_token = token or os.environ.get("CODESYNC_TOKEN")

    setup_logging(LOG_PATH)
    click.echo(f"Database: {resolved_db_path}")
    click.echo(f"Listening on http://{host}:{port}")

    db = Database(resolved_db_path)
    try:
        uvicorn.run(create_app(db, token=resolved_token), host=host, port=port)
    finally:
        db.close()
