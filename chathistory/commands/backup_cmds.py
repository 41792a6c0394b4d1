from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from chathistory.errors import ChatHistoryError
from chathistory.store import SessionStore

from .common import fail, storage_dir
from .session_cmds import _format_bytes


def backup_create_cmd(*, store_from_path, storage_path: str | None, output: str | None) -> None:
    store = store_from_path(storage_path)
    try:
        info = store.create_backup(output)
    except ChatHistoryError as exc:
        fail(exc)
    print(
        f"[green]Backed up {info.session_count} sessions to {escape(str(info.path))}[/green]"
        f" ({_format_bytes(info.size)})"
    )


def backup_list_cmd(*, storage_path: str | None) -> None:
    # Listing must work while sessions.json is corrupt, so the store is not loaded.
    store = SessionStore(storage_dir(storage_path))
    backups = store.list_backups()
    if not backups:
        print("No backups found")
        return
    for info in backups:
        sessions = "unreadable" if info.session_count is None else f"{info.session_count} sessions"
        typer.echo(
            f"- {info.name}  {info.created_at:%Y-%m-%d %H:%M:%S}  "
            f"{sessions}  {_format_bytes(info.size)}"
        )


def backup_restore_cmd(*, storage_path: str | None, backup: str, yes: bool) -> None:
    """Replace all sessions with a backup; asks first unless --yes."""

    store = SessionStore(storage_dir(storage_path))
    if not yes:
        typer.confirm(
            f"Replace all sessions in {store.persistence.path} with {backup}?", abort=True
        )
    try:
        restored = store.restore_backup(backup)
    except ChatHistoryError as exc:
        fail(exc)
    print(f"[green]Restored {restored} sessions from {escape(backup)}[/green]")
