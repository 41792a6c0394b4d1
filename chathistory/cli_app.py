from __future__ import annotations

import json

import typer
from rich import print
from rich.markup import escape

from . import __version__
from .commands.autosave_cmds import autosave_run_cmd, autosave_status_cmd
from .commands.backup_cmds import backup_create_cmd, backup_list_cmd, backup_restore_cmd
from .commands.common import config_or_exit, configure_logging, store_from_path
from .commands.session_cmds import (
    add_message_cmd,
    new_session_cmd,
    search_cmd,
    show_cmd,
    stats_cmd,
)
from .config import get_config_path, get_env_overrides
from .viewer import start_viewer

app = typer.Typer(help="chathistory: session history and autosave for editor chats")
autosave_app = typer.Typer(help="Periodic capture of saved files")
config_app = typer.Typer(help="Inspect configuration")
backup_app = typer.Typer(help="Create, list and restore session backups")
app.add_typer(autosave_app, name="autosave")
app.add_typer(config_app, name="config")
app.add_typer(backup_app, name="backup")

STORAGE_HELP = "Directory holding sessions.json"


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose)


@app.command()
def version() -> None:
    """Print the installed version."""
    print(__version__)


@app.command()
def init(storage_path: str = typer.Option(None, help=STORAGE_HELP)) -> None:
    """Create the storage directory (no-op if it already exists)."""

    store = store_from_path(storage_path)
    print(f"Initialized session store at {store.persistence.path}")


@app.command("new")
def new_session(
    title: str = typer.Argument(..., help="Session title"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    project: str = typer.Option(None, help="Originating project"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Create a new empty session."""

    new_session_cmd(
        store_from_path=store_from_path,
        storage_path=storage_path,
        title=title,
        tags=tag,
        project=project,
    )


@app.command("add")
def add_message(
    session_id: str = typer.Argument(..., help="Session id"),
    content: str = typer.Argument(..., help="Message text"),
    role: str = typer.Option("user", help="user, assistant or system"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Append a message to a session."""

    add_message_cmd(
        store_from_path=store_from_path,
        storage_path=storage_path,
        session_id=session_id,
        role=role,
        content=content,
    )


@app.command()
def search(
    keyword: str = typer.Argument(None, help="Case-insensitive keyword"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Match any of these tags"),
    limit: int = typer.Option(None, help="Maximum number of sessions"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Search sessions by keyword and tags."""

    search_cmd(
        store_from_path=store_from_path,
        storage_path=storage_path,
        keyword=keyword,
        tags=tag,
        limit=limit,
    )


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session id"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Print a session as JSON."""

    show_cmd(store_from_path=store_from_path, storage_path=storage_path, session_id=session_id)


@app.command()
def stats(storage_path: str = typer.Option(None, help=STORAGE_HELP)) -> None:
    """Show session statistics."""

    stats_cmd(store_from_path=store_from_path, storage_path=storage_path)


@app.command()
def serve(
    host: str = typer.Option(None, help="Viewer host"),
    port: int = typer.Option(None, help="Viewer port"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Run the read-only session viewer API."""

    cfg = config_or_exit()
    host = host or cfg.viewer_host
    port = port or cfg.viewer_port
    store = store_from_path(storage_path)
    print(f"[green]Viewer running at http://{host}:{port}[/green]")
    start_viewer(store, host=host, port=port, background=False)


@autosave_app.command("run")
def autosave_run(
    watch: list[str] = typer.Option(None, "--watch", "-w", help="Directory to watch"),
    pattern: list[str] = typer.Option(None, "--pattern", "-p", help="Glob file pattern"),
    interval: float = typer.Option(None, help="Minutes between captures"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Run the autosave loop in the foreground."""

    autosave_run_cmd(
        config=config_or_exit(),
        storage_path=storage_path,
        interval=interval,
        watch=watch,
        patterns=pattern,
    )


@autosave_app.command("status")
def autosave_status(storage_path: str = typer.Option(None, help=STORAGE_HELP)) -> None:
    """Show autosave settings and the most recent autosaved session."""

    autosave_status_cmd(config=config_or_exit(), storage_path=storage_path)


@backup_app.command("create")
def backup_create(
    output: str = typer.Option(None, "--output", "-o", help="Write the backup to this file"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Copy every session into a backup file."""

    backup_create_cmd(store_from_path=store_from_path, storage_path=storage_path, output=output)


@backup_app.command("list")
def backup_list(storage_path: str = typer.Option(None, help=STORAGE_HELP)) -> None:
    """List backups, newest first."""

    backup_list_cmd(storage_path=storage_path)


@backup_app.command("restore")
def backup_restore(
    backup: str = typer.Argument(..., help="Backup file, or its name in the backups directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    storage_path: str = typer.Option(None, help=STORAGE_HELP),
) -> None:
    """Replace all sessions with the contents of a backup."""

    backup_restore_cmd(storage_path=storage_path, backup=backup, yes=yes)


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""

    print(f"# {get_config_path()}")
    for key, value in get_env_overrides().items():
        print(f"# {key} overridden by environment: {escape(value)}")
    typer.echo(json.dumps(config_or_exit().to_dict(), indent=2))
