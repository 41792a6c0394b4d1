from __future__ import annotations

from ._store import SessionStore
from .backups import BACKUPS_DIRNAME, MAX_BACKUPS, BackupInfo
from .persistence import SESSIONS_FILENAME, JsonFilePersistence
from .types import MESSAGE_ROLES, Message, Session, SessionStats

__all__ = [
    "BACKUPS_DIRNAME",
    "BackupInfo",
    "JsonFilePersistence",
    "MAX_BACKUPS",
    "MESSAGE_ROLES",
    "Message",
    "SESSIONS_FILENAME",
    "Session",
    "SessionStats",
    "SessionStore",
]
