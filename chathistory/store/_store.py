from __future__ import annotations

import copy
import datetime as dt
import logging
import shutil
import threading
from collections import Counter
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from uuid import uuid4

from ..errors import (
    NotInitializedError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
    WriteFailureError,
)
from . import search as store_search
from .backups import (
    BACKUPS_DIRNAME,
    BackupInfo,
    backup_filename,
    describe_backup,
    list_backups,
    prune_backups,
)
from .persistence import SESSIONS_FILENAME, JsonFilePersistence
from .types import MESSAGE_ROLES, Message, Session, SessionStats

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory session collection backed by a single JSON document.

    Every mutation rewrites the whole document through the persistence adapter.
    When that write fails the mutation is undone in memory before the error is
    raised, so memory and disk agree after every call.
    """

    def __init__(
        self,
        storage_path: Path | str,
        *,
        persistence: JsonFilePersistence | None = None,
    ) -> None:
        self.storage_path = Path(storage_path).expanduser()
        self.persistence = persistence or JsonFilePersistence(
            self.storage_path / SESSIONS_FILENAME
        )
        self._sessions: dict[str, Session] = {}
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        with self._lock:
            if self._initialized:
                return
            self.storage_path.mkdir(parents=True, exist_ok=True)
            sessions = self.persistence.load()
            self._sessions = {session.id: session for session in sessions}
            self._initialized = True
            logger.info(
                "session store ready at %s (%d sessions)",
                self.persistence.path,
                len(self._sessions),
            )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError()

    @staticmethod
    def _now() -> dt.datetime:
        return dt.datetime.now(dt.UTC)

    def _persist(self) -> None:
        self.persistence.save(self._sessions.values())

    def create_session(
        self,
        title: str,
        *,
        tags: Sequence[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        self._require_initialized()
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("session title must be a non-empty string")
        clean_tags = _normalize_tags(tags)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("session metadata must be a mapping")

        with self._lock:
            session_id = uuid4().hex
            while session_id in self._sessions:
                session_id = uuid4().hex
            now = self._now()
            session = Session(
                id=session_id,
                title=title.strip(),
                created_at=now,
                updated_at=now,
                tags=clean_tags,
                metadata=copy.deepcopy(metadata or {}),
            )
            self._sessions[session.id] = session
            try:
                self._persist()
            except WriteFailureError as exc:
                del self._sessions[session.id]
                logger.warning("rolled back session %s: %s", session.id, exc)
                raise PersistenceError(f"could not persist new session: {exc}") from exc
            logger.debug("created session %s (%s)", session.id, session.title)
            return copy.deepcopy(session)

    def add_message(
        self,
        session_id: str,
        *,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        self._require_initialized()
        if role not in MESSAGE_ROLES:
            raise ValidationError(f"unknown message role: {role!r}")
        if not isinstance(content, str):
            raise ValidationError("message content must be a string")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("message metadata must be a mapping")

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            previous_updated_at = session.updated_at
            timestamp = max(self._now(), previous_updated_at)
            message = Message(
                id=uuid4().hex,
                role=role,
                content=content,
                timestamp=timestamp,
                metadata=copy.deepcopy(metadata or {}),
            )
            session.messages.append(message)
            session.updated_at = timestamp
            try:
                self._persist()
            except WriteFailureError as exc:
                session.messages.pop()
                session.updated_at = previous_updated_at
                logger.warning("rolled back message on session %s: %s", session_id, exc)
                raise PersistenceError(f"could not persist message: {exc}") from exc
            return copy.deepcopy(message)

    def get_session(self, session_id: str) -> Session | None:
        self._require_initialized()
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session is not None else None

    def require_session(self, session_id: str) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def search_sessions(
        self,
        *,
        keyword: str | None = None,
        tags: Sequence[str] | None = None,
        limit: int | None = None,
        start_date: dt.datetime | None = None,
        end_date: dt.datetime | None = None,
    ) -> list[Session]:
        self._require_initialized()
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")
        with self._lock:
            results = store_search.filter_sessions(
                self._sessions.values(),
                keyword=keyword,
                tags=list(tags) if tags else None,
                start_date=_as_utc(start_date),
                end_date=_as_utc(end_date),
                limit=limit,
            )
            return copy.deepcopy(results)

    def get_stats(self) -> SessionStats:
        self._require_initialized()
        with self._lock:
            sessions = list(self._sessions.values())
            tag_counts: Counter[str] = Counter()
            for session in sessions:
                tag_counts.update(set(session.tags))
            return {
                "total_sessions": len(sessions),
                "total_messages": sum(len(session.messages) for session in sessions),
                "storage_size": self.persistence.size(),
                "tags": dict(tag_counts.most_common()),
            }

    @property
    def backup_directory(self) -> Path:
        return self.storage_path / BACKUPS_DIRNAME

    def create_backup(self, path: Path | str | None = None) -> BackupInfo:
        """Write a copy of every session; default location is the backups directory."""

        self._require_initialized()
        with self._lock:
            if path is None:
                target = self.backup_directory / backup_filename(self._now())
            else:
                target = Path(path).expanduser()
            sessions = list(self._sessions.values())
            try:
                JsonFilePersistence(target).save(sessions)
            except WriteFailureError as exc:
                raise PersistenceError(f"could not write backup: {exc}") from exc
            target.with_name(target.name + ".lock").unlink(missing_ok=True)
        if path is None:
            prune_backups(self.backup_directory)
        logger.info("backed up %d sessions to %s", len(sessions), target)
        info = describe_backup(target)
        if info is None:
            raise PersistenceError(f"backup vanished after writing: {target}")
        return info

    def list_backups(self) -> list[BackupInfo]:
        return list_backups(self.backup_directory)

    def restore_backup(self, path: Path | str) -> int:
        """Replace every session with the contents of a backup file.

        Allowed before ``initialize()`` so a corrupt document can be recovered.
        The document being replaced is first copied into the backups directory.
        Returns the number of restored sessions.
        """

        source = Path(path).expanduser()
        if not source.is_file() and source.parent == Path("."):
            # A bare name refers to a file in the backups directory.
            source = self.backup_directory / source
        if not source.is_file():
            raise ValidationError(f"backup not found: {source}")
        sessions = JsonFilePersistence(source).load()
        with self._lock:
            current = self.persistence.path
            if current.exists():
                kept = self.backup_directory / backup_filename(self._now())
                try:
                    kept.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(current, kept)
                except OSError as exc:
                    raise PersistenceError(f"could not keep current sessions: {exc}") from exc
                logger.info("kept replaced sessions at %s", kept)
            self.storage_path.mkdir(parents=True, exist_ok=True)
            try:
                self.persistence.save(sessions)
            except WriteFailureError as exc:
                raise PersistenceError(f"could not restore backup: {exc}") from exc
            self._sessions = {session.id: session for session in sessions}
            self._initialized = True
        logger.info("restored %d sessions from %s", len(sessions), source)
        return len(sessions)


def _normalize_tags(tags: Sequence[str] | None) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        raise ValidationError("tags must be a list of strings")
    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if tag and tag not in result:
            result.append(tag)
    return result


def _as_utc(value: dt.datetime | None) -> dt.datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.UTC)
