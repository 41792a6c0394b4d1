from __future__ import annotations

import os
from pathlib import Path

from chathistory.capture import (
    RecentFileProvider,
    matches_watch_patterns,
    within_watch_directories,
)


def test_matches_watch_patterns_uses_basename() -> None:
    assert matches_watch_patterns("/repo/src/app.py", ["*.py"])
    assert matches_watch_patterns("/repo/README.md", ["*.txt", "*.md"])
    assert not matches_watch_patterns("/repo/image.png", ["*.py", "*.md"])
    assert not matches_watch_patterns("/repo/app.py", [])


def test_matches_watch_patterns_ignores_directory_names() -> None:
    assert not matches_watch_patterns("/repo/test/fixtures/data.bin", ["*test*"])
    assert matches_watch_patterns("/repo/src/test_app.py", ["*test*"])
    assert not matches_watch_patterns("/repo/docs/guide.rst", ["*/docs/*"])


def test_within_watch_directories(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    (root / "sub").mkdir(parents=True)
    assert within_watch_directories(str(root / "sub" / "a.md"), [str(root)])
    assert not within_watch_directories(str(tmp_path / "elsewhere.md"), [str(root)])
    assert within_watch_directories(str(tmp_path / "elsewhere.md"), [])


def test_recent_file_provider_picks_latest_matching_file(tmp_path: Path) -> None:
    older = tmp_path / "older.md"
    newer = tmp_path / "newer.md"
    ignored = tmp_path / "newest.bin"
    hidden = tmp_path / ".git" / "HEAD.md"
    hidden.parent.mkdir()
    for index, path in enumerate([older, newer, ignored, hidden]):
        path.write_text(f"content {path.name}")
        os.utime(path, (1_000_000 + index, 1_000_000 + index))

    provider = RecentFileProvider([str(tmp_path)], ["*.md"])
    content = provider.active_content()

    assert content is not None
    assert content.path == str(newer)
    assert content.text == "content newer.md"
    assert content.is_dirty is False
    assert content.is_untitled is False


def test_recent_file_provider_without_matches(tmp_path: Path) -> None:
    (tmp_path / "a.bin").write_bytes(b"\x00")
    assert RecentFileProvider([str(tmp_path)], ["*.md"]).active_content() is None
    assert RecentFileProvider([str(tmp_path / "missing")], ["*.md"]).active_content() is None


def test_recent_file_provider_skips_large_files(tmp_path: Path) -> None:
    (tmp_path / "big.md").write_text("x" * 64)
    provider = RecentFileProvider([str(tmp_path)], ["*.md"], max_bytes=10)
    assert provider.active_content() is None
