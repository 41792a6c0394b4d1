"""Point-in-time copies of the session document.

Backups live in ``<storage>/backups`` as ``backup_<timestamp>.json`` and use
the same layout as ``sessions.json``, so the persistence adapter reads them.
Only the newest ``MAX_BACKUPS`` are kept.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import CorruptStorageError
from .persistence import JsonFilePersistence

logger = logging.getLogger(__name__)

BACKUPS_DIRNAME = "backups"
BACKUP_PREFIX = "backup_"
MAX_BACKUPS = 10


@dataclass
class BackupInfo:
    path: Path
    created_at: dt.datetime
    size: int
    # None when the file no longer reads as a session document.
    session_count: int | None

    @property
    def name(self) -> str:
        return self.path.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "size": self.size,
            "session_count": self.session_count,
        }


def backup_filename(now: dt.datetime) -> str:
    return f"{BACKUP_PREFIX}{now:%Y-%m-%d_%H-%M-%S-%f}.json"


def describe_backup(path: Path) -> BackupInfo | None:
    try:
        stat = path.stat()
    except OSError:
        return None
    try:
        session_count: int | None = len(JsonFilePersistence(path).load())
    except CorruptStorageError as exc:
        logger.debug("backup %s is unreadable: %s", path, exc)
        session_count = None
    return BackupInfo(
        path=path,
        created_at=dt.datetime.fromtimestamp(stat.st_mtime, dt.UTC),
        size=stat.st_size,
        session_count=session_count,
    )


def list_backups(directory: Path) -> list[BackupInfo]:
    """Newest first; the timestamp in the file name decides the order."""

    if not directory.is_dir():
        return []
    infos = []
    for path in sorted(directory.glob(f"{BACKUP_PREFIX}*.json"), reverse=True):
        info = describe_backup(path)
        if info is not None:
            infos.append(info)
    return infos


def prune_backups(directory: Path, keep: int = MAX_BACKUPS) -> list[Path]:
    removed: list[Path] = []
    if not directory.is_dir():
        return removed
    for path in sorted(directory.glob(f"{BACKUP_PREFIX}*.json"), reverse=True)[keep:]:
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("could not remove old backup %s: %s", path, exc)
            continue
        path.with_name(path.name + ".lock").unlink(missing_ok=True)
        removed.append(path)
    if removed:
        logger.info("removed %d old backups from %s", len(removed), directory)
    return removed
