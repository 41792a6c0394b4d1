"""Periodic capture of the active editor document into a session.

The scheduler is a two-state machine (stopped/running) that owns at most one
pending timer. Each tick runs to completion before the next one is scheduled,
and a failing tick is logged without stopping the loop.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .capture import ContentProvider, matches_watch_patterns, within_watch_directories
from .config import AutoSaveConfig
from .store import SessionStore

logger = logging.getLogger(__name__)

AUTOSAVE_SOURCE = "auto-save"
AUTOSAVE_TAGS = ("auto-save",)

TimerFactory = Callable[[float, Callable[[], None]], Any]


@dataclass
class AutoSaveStatus:
    enabled: bool
    running: bool
    save_count: int
    current_session_id: str | None
    last_save_time: dt.datetime | None
    last_error: str | None
    failure_count: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.last_save_time is not None:
            data["last_save_time"] = self.last_save_time.isoformat()
        return data


class AutoSaveScheduler:
    def __init__(
        self,
        store: SessionStore,
        config: AutoSaveConfig,
        provider: ContentProvider,
        *,
        project: str | None = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.store = store
        self.config = config
        self.provider = provider
        self.project = project or _default_project(config)
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._capture_lock = threading.Lock()
        self._timer: Any = None
        self._running = False
        self._save_count = 0
        self._failure_count = 0
        self._current_session_id: str | None = None
        self._last_save_time: dt.datetime | None = None
        self._last_error: str | None = None
        # (path, sha256 of text) of the last capture made by a tick.
        self._last_fingerprint: tuple[str, str] | None = None

    @property
    def running(self) -> bool:
        return self._running

    def interval_seconds(self) -> float:
        return max(1.0, self.config.interval * 60.0)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if not self.config.enabled:
                logger.info("autosave is disabled; not starting")
                return
            self._running = True
            self._current_session_id = None
            self._last_fingerprint = None
            self._schedule_locked()
        logger.info("autosave started (every %.1f minutes)", self.config.interval)

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        logger.info("autosave stopped after %d saves", self._save_count)

    def _schedule_locked(self) -> None:
        timer = self._timer_factory(self.interval_seconds(), self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._timer = None
        try:
            self.tick()
        finally:
            with self._lock:
                # stop() may have run during the tick; start() may already have rescheduled.
                if self._running and self._timer is None:
                    self._schedule_locked()

    def tick(self) -> bool:
        """Capture the active document once. Returns True when a message was saved."""

        try:
            content = self.provider.active_content()
        except Exception as exc:
            logger.exception("autosave could not read the active document")
            self._record_failure(exc)
            return False
        if content is None or content.is_untitled or content.is_dirty:
            return False
        if not matches_watch_patterns(content.path, self.config.file_patterns):
            logger.debug("autosave skipped %s: no matching file pattern", content.path)
            return False
        if not within_watch_directories(content.path, self.config.watch_directories):
            logger.debug("autosave skipped %s: outside watch directories", content.path)
            return False
        fingerprint = (content.path, hashlib.sha256(content.text.encode("utf-8")).hexdigest())
        with self._lock:
            unchanged = fingerprint == self._last_fingerprint
        if unchanged:
            logger.debug("autosave skipped %s: unchanged since last capture", content.path)
            return False

        try:
            self._capture(
                content.text,
                role="user",
                metadata={
                    "source": AUTOSAVE_SOURCE,
                    "fileName": content.path,
                    "savedAt": dt.datetime.now(dt.UTC).isoformat(),
                },
            )
        except Exception as exc:
            logger.exception("autosave tick failed for %s", content.path)
            self._record_failure(exc)
            return False
        with self._lock:
            self._last_fingerprint = fingerprint
        return True

    def save_message(
        self,
        content: str,
        *,
        role: str = "user",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Append to the current session outside the timer; errors propagate."""

        merged = {"source": AUTOSAVE_SOURCE, **(metadata or {})}
        return self._capture(content, role=role, metadata=merged)

    def _capture(self, content: str, *, role: str, metadata: dict[str, Any]) -> str:
        with self._capture_lock:
            session_id = self._current_session_id
            if session_id is None:
                session_id = self._open_session()
            self.store.add_message(session_id, role=role, content=content, metadata=metadata)
            with self._lock:
                self._save_count += 1
                self._last_save_time = dt.datetime.now(dt.UTC)
                self._last_error = None
            return session_id

    def _open_session(self) -> str:
        title = f"Auto-save {dt.datetime.now():%Y-%m-%d %H:%M:%S}"
        session = self.store.create_session(
            title,
            tags=list(AUTOSAVE_TAGS),
            metadata={"source": AUTOSAVE_SOURCE, "project": self.project},
        )
        with self._lock:
            self._current_session_id = session.id
        logger.info("autosave opened session %s", session.id)
        return session.id

    def _record_failure(self, exc: BaseException) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_error = f"{type(exc).__name__}: {exc}"

    def get_status(self) -> AutoSaveStatus:
        with self._lock:
            return AutoSaveStatus(
                enabled=self.config.enabled,
                running=self._running,
                save_count=self._save_count,
                current_session_id=self._current_session_id,
                last_save_time=self._last_save_time,
                last_error=self._last_error,
                failure_count=self._failure_count,
            )


def _default_project(config: AutoSaveConfig) -> str | None:
    if config.watch_directories:
        return Path(config.watch_directories[0]).expanduser().resolve().name or None
    return None
