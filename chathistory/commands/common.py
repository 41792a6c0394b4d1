from __future__ import annotations

import logging

import typer
from rich import print
from rich.markup import escape

from chathistory.config import ChatHistoryConfig, load_config
from chathistory.errors import ChatHistoryError, CorruptStorageError
from chathistory.store import SessionStore


def config_or_exit() -> ChatHistoryConfig:
    try:
        return load_config()
    except (OSError, ValueError) as exc:
        print(f"[red]Failed to read config: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def storage_dir(storage_path: str | None) -> str:
    return storage_path or str(config_or_exit().resolved_storage_path())


def store_from_path(storage_path: str | None) -> SessionStore:
    store = SessionStore(storage_dir(storage_path))
    try:
        store.initialize()
    except CorruptStorageError as exc:
        # Never touch a corrupt file without the operator's say-so.
        print(f"[red]{escape(str(exc))}[/red]")
        print("[yellow]Restore a backup (chathistory backup restore) or repair the file before continuing.[/yellow]")
        raise typer.Exit(code=1) from exc
    return store


def fail(exc: ChatHistoryError) -> None:
    print(f"[red]{escape(str(exc))}[/red]")
    raise typer.Exit(code=1) from exc


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
