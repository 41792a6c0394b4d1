"""Whole-collection JSON persistence for sessions.

Every save rewrites the full document. That keeps the store simple for the
expected scale (hundreds to low thousands of sessions) but it is a scaling
limit: larger collections need a different adapter, such as an append-only log
with periodic compaction, behind the same load/save interface.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import CorruptStorageError, WriteFailureError
from .types import Session, format_timestamp

try:  # pragma: no cover
    import fcntl
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

SESSIONS_FILENAME = "sessions.json"


class JsonFilePersistence:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def exists(self) -> bool:
        return self.path.exists()

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def load(self) -> list[Session]:
        try:
            data_bytes = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise CorruptStorageError(self.path, f"unreadable: {exc}") from exc
        try:
            raw = data_bytes.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptStorageError(self.path, "invalid utf-8") from exc
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStorageError(self.path, "invalid json") from exc
        if not isinstance(data, dict):
            raise CorruptStorageError(self.path, "document must be an object")
        raw_sessions = data.get("sessions")
        if not isinstance(raw_sessions, list):
            raise CorruptStorageError(self.path, "sessions must be a list")

        sessions: list[Session] = []
        seen: set[str] = set()
        for index, item in enumerate(raw_sessions):
            try:
                session = Session.from_dict(item)
            except ValueError as exc:
                raise CorruptStorageError(self.path, f"session {index}: {exc}") from exc
            if session.id in seen:
                raise CorruptStorageError(self.path, f"duplicate session id {session.id}")
            seen.add(session.id)
            sessions.append(session)
        logger.debug("loaded %d sessions from %s", len(sessions), self.path)
        return sessions

    def save(self, sessions: Iterable[Session]) -> None:
        document = {
            "sessions": [session.to_dict() for session in sessions],
            "savedAt": format_timestamp(dt.datetime.now(dt.UTC)),
        }
        try:
            data = (json.dumps(document, ensure_ascii=False, indent=2) + "\n").encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise WriteFailureError(self.path, f"unserializable data: {exc}") from exc

        tmp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._write_lock():
                with tempfile.NamedTemporaryFile(
                    mode="wb",
                    delete=False,
                    dir=str(self.path.parent),
                    prefix=self.path.name + ".tmp.",
                ) as handle:
                    tmp_path = Path(handle.name)
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self.path)
                tmp_path = None
        except OSError as exc:
            raise WriteFailureError(self.path, str(exc)) from exc
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
        logger.debug("saved %d sessions to %s", len(document["sessions"]), self.path)

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        if fcntl is None:  # pragma: no cover
            yield
            return
        fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
