from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CHATHISTORY_CONFIG", str(tmp_path / "config" / "config.json"))
    for name in (
        "CHATHISTORY_STORAGE_PATH",
        "CHATHISTORY_AUTOSAVE_ENABLED",
        "CHATHISTORY_AUTOSAVE_INTERVAL",
        "CHATHISTORY_AUTOSAVE_IDLE_TIMEOUT",
        "CHATHISTORY_AUTOSAVE_WATCH_DIRECTORIES",
        "CHATHISTORY_AUTOSAVE_FILE_PATTERNS",
        "CHATHISTORY_VIEWER_HOST",
        "CHATHISTORY_VIEWER_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
