from __future__ import annotations

import datetime as dt
import json

import typer
from rich import print
from rich.markup import escape

from chathistory.errors import ChatHistoryError

from .common import fail


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def _preview(text: str, limit: int = 80) -> str:
    line = " ".join(text.split())
    return line if len(line) <= limit else line[: limit - 1] + "…"


def new_session_cmd(
    *,
    store_from_path,
    storage_path: str | None,
    title: str,
    tags: list[str] | None,
    project: str | None,
) -> None:
    """Create an empty session (manual capture)."""

    store = store_from_path(storage_path)
    metadata = {"source": "cli"}
    if project:
        metadata["project"] = project
    try:
        session = store.create_session(title, tags=tags or [], metadata=metadata)
    except ChatHistoryError as exc:
        fail(exc)
    print(f"Created session {session.id}")


def add_message_cmd(
    *,
    store_from_path,
    storage_path: str | None,
    session_id: str,
    role: str,
    content: str,
) -> None:
    """Append a message to an existing session."""

    store = store_from_path(storage_path)
    try:
        message = store.add_message(
            session_id,
            role=role,
            content=content,
            metadata={"source": "cli", "savedAt": dt.datetime.now(dt.UTC).isoformat()},
        )
    except ChatHistoryError as exc:
        fail(exc)
    print(f"Added message {message.id} to {session_id}")


def search_cmd(
    *,
    store_from_path,
    storage_path: str | None,
    keyword: str | None,
    tags: list[str] | None,
    limit: int | None,
) -> None:
    """Search sessions, most recently active first."""

    store = store_from_path(storage_path)
    try:
        results = store.search_sessions(keyword=keyword, tags=tags or None, limit=limit)
    except ChatHistoryError as exc:
        fail(exc)
    if not results:
        print("[yellow]No sessions found[/yellow]")
        return
    for session in results:
        tag_text = f" ({escape(', '.join(session.tags))})" if session.tags else ""
        print(
            f"[bold]{session.id}[/bold] {escape(session.title)}{tag_text}\n"
            f"  {len(session.messages)} messages, updated {session.updated_at.isoformat()}"
        )
        if session.messages:
            print(f"  {escape(_preview(session.messages[-1].content))}")


def show_cmd(*, store_from_path, storage_path: str | None, session_id: str) -> None:
    """Print a session as JSON."""

    store = store_from_path(storage_path)
    try:
        session = store.require_session(session_id)
    except ChatHistoryError as exc:
        fail(exc)
    typer.echo(json.dumps(session.to_dict(), indent=2, ensure_ascii=False))


def stats_cmd(*, store_from_path, storage_path: str | None) -> None:
    store = store_from_path(storage_path)
    stats = store.get_stats()
    print("[bold]Sessions[/bold]")
    print(f"- Path: {store.persistence.path}")
    print(f"- Size: {_format_bytes(int(stats['storage_size']))}")
    print(f"- Sessions: {stats['total_sessions']}")
    print(f"- Messages: {stats['total_messages']}")
    if stats["tags"]:
        print("\n[bold]Tags[/bold]")
        for tag, count in stats["tags"].items():
            print(f"- {escape(tag)}: {count}")
