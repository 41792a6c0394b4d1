from __future__ import annotations

import json
import signal
import threading

import typer
from rich import print

from chathistory.autosave import AUTOSAVE_TAGS
from chathistory.errors import CorruptStorageError
from chathistory.services import build_services

from .common import fail


def autosave_run_cmd(
    *,
    config,
    storage_path: str | None,
    interval: float | None,
    watch: list[str] | None,
    patterns: list[str] | None,
) -> None:
    """Capture the most recently saved watched file until interrupted."""

    auto_save = config.auto_save
    auto_save.enabled = True
    if interval is not None:
        auto_save.interval = interval
    if watch:
        auto_save.watch_directories = list(watch)
    if patterns:
        auto_save.file_patterns = list(patterns)
    if not auto_save.watch_directories:
        print("[red]No watch directories configured (use --watch)[/red]")
        raise typer.Exit(code=1)

    if storage_path:
        config.storage_path = storage_path
    try:
        services = build_services(config)
    except CorruptStorageError as exc:
        fail(exc)
    scheduler = services.autosave

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    scheduler.start()
    print(
        f"[green]Autosave running every {auto_save.interval:g} min over "
        f"{', '.join(auto_save.watch_directories)}[/green]"
    )
    try:
        stop.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        status = scheduler.get_status()
        typer.echo(f"Autosave stopped: {json.dumps(status.to_dict())}")



def autosave_status_cmd(*, config, storage_path: str | None) -> None:
    """Print scheduler state for this configuration and the latest autosaved session."""

    if storage_path:
        config.storage_path = storage_path
    try:
        services = build_services(config)
    except CorruptStorageError as exc:
        fail(exc)
    payload = services.autosave.get_status().to_dict()
    payload["interval_minutes"] = config.auto_save.interval
    payload["watch_directories"] = list(config.auto_save.watch_directories)
    latest = services.store.search_sessions(tags=list(AUTOSAVE_TAGS), limit=1)
    payload["latest_session"] = (
        {
            "id": latest[0].id,
            "title": latest[0].title,
            "messages": len(latest[0].messages),
            "updated_at": latest[0].updated_at.isoformat(),
        }
        if latest
        else None
    )
    typer.echo(json.dumps(payload, indent=2))
