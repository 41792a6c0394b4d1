from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import parse_qs, unquote

from ..errors import SessionNotFoundError, ValidationError
from ..store import SessionStore


class _ViewerHandler(Protocol):
    def _send_json(self, payload: dict[str, Any], status: int = 200) -> None: ...


def _parse_limit(params: dict[str, list[str]]) -> int | None:
    raw = params.get("limit", [None])[0]
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"invalid limit: {raw!r}") from exc


def handle_get(handler: _ViewerHandler, store: SessionStore, path: str, query: str) -> bool:
    if path == "/api/stats":
        handler._send_json(dict(store.get_stats()))
        return True

    if path == "/api/sessions":
        params = parse_qs(query)
        keyword = params.get("keyword", [None])[0] or None
        tags = [tag for value in params.get("tag", []) for tag in value.split(",") if tag]
        sessions = store.search_sessions(
            keyword=keyword,
            tags=tags or None,
            limit=_parse_limit(params),
        )
        handler._send_json({"items": [session.to_dict() for session in sessions]})
        return True

    if path.startswith("/api/sessions/"):
        session_id = unquote(path[len("/api/sessions/") :])
        session = store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        handler._send_json(session.to_dict())
        return True

    return False
