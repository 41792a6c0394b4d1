from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveContent:
    path: str
    text: str
    is_untitled: bool = False
    # True when the editor holds changes that have not been written to disk.
    is_dirty: bool = False


class ContentProvider(Protocol):
    def active_content(self) -> ActiveContent | None: ...


def matches_watch_patterns(path: str, patterns: Sequence[str]) -> bool:
    name = os.path.basename(path)
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def within_watch_directories(path: str, directories: Sequence[str]) -> bool:
    if not directories:
        return True
    resolved = Path(path).expanduser().resolve()
    for directory in directories:
        root = Path(directory).expanduser().resolve()
        if resolved == root or root in resolved.parents:
            return True
    return False


class StaticContentProvider:
    """Holds whatever the host editor last reported as the active document."""

    def __init__(self, content: ActiveContent | None = None) -> None:
        self.content = content

    def set(self, content: ActiveContent | None) -> None:
        self.content = content

    def active_content(self) -> ActiveContent | None:
        return self.content


class RecentFileProvider:
    """Treats the most recently modified watched file on disk as the active one.

    Files on disk are always saved state, so the content is never dirty.
    """

    def __init__(
        self,
        watch_directories: Sequence[str],
        file_patterns: Sequence[str],
        *,
        max_bytes: int = 1_000_000,
    ) -> None:
        self.watch_directories = list(watch_directories)
        self.file_patterns = list(file_patterns)
        self.max_bytes = max_bytes

    def _candidates(self) -> list[Path]:
        found: list[Path] = []
        for directory in self.watch_directories:
            root = Path(directory).expanduser()
            if not root.is_dir():
                continue
            for path in root.rglob("*"):
                if any(part.startswith(".") for part in path.relative_to(root).parts):
                    continue
                if path.is_file() and matches_watch_patterns(str(path), self.file_patterns):
                    found.append(path)
        return found

    def active_content(self) -> ActiveContent | None:
        latest: Path | None = None
        latest_mtime = -1.0
        for path in self._candidates():
            try:
                mtime = path.stat().st_mtime
            except OSError:
                continue
            if mtime > latest_mtime:
                latest, latest_mtime = path, mtime
        if latest is None:
            return None
        try:
            if latest.stat().st_size > self.max_bytes:
                logger.debug("skipping %s: larger than %d bytes", latest, self.max_bytes)
                return None
            text = latest.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("could not read %s: %s", latest, exc)
            return None
        return ActiveContent(path=str(latest), text=text)
