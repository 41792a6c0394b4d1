from __future__ import annotations

import logging
import os
import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import urlparse

from .errors import (
    ChatHistoryError,
    NotInitializedError,
    SessionNotFoundError,
    ValidationError,
)
from .store import SessionStore
from .viewer_http import reject_cross_origin, send_json_response
from .viewer_routes import sessions as viewer_routes_sessions

logger = logging.getLogger(__name__)

DEFAULT_VIEWER_HOST = "127.0.0.1"
DEFAULT_VIEWER_PORT = 38890


def error_status(exc: ChatHistoryError) -> int:
    if isinstance(exc, SessionNotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotInitializedError):
        return 503
    return 500


class ViewerHandler(BaseHTTPRequestHandler):
    store: SessionStore

    def _send_json(self, payload: dict, status: int = 200) -> None:
        send_json_response(self, payload, status=status)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        if os.environ.get("CHATHISTORY_VIEWER_LOGS") == "1":
            super().log_message(format, *args)

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if reject_cross_origin(self):
            return
        try:
            if viewer_routes_sessions.handle_get(self, self.store, parsed.path, parsed.query):
                return
            self._send_json({"error": "not found"}, status=404)
        except ChatHistoryError as exc:
            self._send_json({"error": str(exc)}, status=error_status(exc))
        except Exception as exc:  # pragma: no cover
            logger.exception("viewer request failed: %s", parsed.path)
            payload: dict[str, Any] = {"error": "internal server error"}
            if os.environ.get("CHATHISTORY_VIEWER_DEBUG") == "1":
                payload["detail"] = str(exc)
            self._send_json(payload, status=500)


def make_handler(store: SessionStore) -> type[ViewerHandler]:
    return type("BoundViewerHandler", (ViewerHandler,), {"store": store})


def _serve(store: SessionStore, host: str, port: int) -> None:
    server = HTTPServer((host, port), make_handler(store))
    server.serve_forever()


def start_viewer(
    store: SessionStore,
    host: str = DEFAULT_VIEWER_HOST,
    port: int = DEFAULT_VIEWER_PORT,
    background: bool = False,
) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.2)
        try:
            if sock.connect_ex((host, port)) == 0:
                logger.info("viewer already listening on %s:%s", host, port)
                return
        except OSError:
            pass
    if background:
        thread = threading.Thread(target=_serve, args=(store, host, port), daemon=True)
        thread.start()
    else:
        _serve(store, host, port)
