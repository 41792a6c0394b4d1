from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

import pytest

from chathistory.errors import (
    CorruptStorageError,
    NotInitializedError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
    WriteFailureError,
)
from chathistory.store import SessionStore


def _store(tmp_path: Path) -> SessionStore:
    store = SessionStore(tmp_path / "data")
    store.initialize()
    return store


def _stepping_clock(start: dt.datetime, step: dt.timedelta):
    current = [start]

    def _now() -> dt.datetime:
        value = current[0]
        current[0] = value + step
        return value

    return _now


def test_operations_require_initialize(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "data")
    with pytest.raises(NotInitializedError):
        store.create_session("T")
    with pytest.raises(NotInitializedError):
        store.search_sessions()
    with pytest.raises(NotInitializedError):
        store.get_stats()
    with pytest.raises(NotInitializedError):
        store.add_message("missing", role="user", content="x")


def test_initialize_creates_directory_and_is_idempotent(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "nested" / "data")
    store.initialize()
    assert (tmp_path / "nested" / "data").is_dir()
    session = store.create_session("Kept")

    store.initialize()
    assert [s.id for s in store.search_sessions()] == [session.id]

    reopened = SessionStore(tmp_path / "nested" / "data")
    reopened.initialize()
    reopened.initialize()
    assert [s.id for s in reopened.search_sessions()] == [session.id]


def test_create_and_retrieve_by_tag(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("T", tags=["x"])

    assert session.messages == []
    assert session.created_at == session.updated_at
    assert [s.id for s in store.search_sessions(tags=["x"])] == [session.id]
    assert store.search_sessions(tags=["y"]) == []


def test_create_session_validates_input(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.create_session("   ")
    with pytest.raises(ValidationError):
        store.create_session("T", tags="not-a-list")  # type: ignore[arg-type]
    assert store.get_stats()["total_sessions"] == 0


def test_create_session_dedupes_tags_and_keeps_metadata(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session(
        "T", tags=["a", "b", "a", " "], metadata={"project": "demo", "nested": {"k": 1}}
    )
    assert session.tags == ["a", "b"]
    assert store.require_session(session.id).metadata == {"project": "demo", "nested": {"k": 1}}


def test_session_ids_are_unique(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ids = {store.create_session(f"S{i}").id for i in range(20)}
    assert len(ids) == 20


def test_keyword_matches_title_or_message_content(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("Refactoring")
    store.add_message(session.id, role="user", content="please fix the bug")

    assert [s.id for s in store.search_sessions(keyword="bug")] == [session.id]
    assert [s.id for s in store.search_sessions(keyword="BUG")] == [session.id]
    assert [s.id for s in store.search_sessions(keyword="factor")] == [session.id]
    assert store.search_sessions(keyword="zzz") == []


def test_tags_match_any_of(tmp_path: Path) -> None:
    store = _store(tmp_path)
    a = store.create_session("A", tags=["one"])
    b = store.create_session("B", tags=["two"])
    store.create_session("C", tags=["three"])

    found = {s.id for s in store.search_sessions(tags=["one", "two"])}
    assert found == {a.id, b.id}


def test_search_orders_by_most_recent_activity(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    monkeypatch.setattr(
        store,
        "_now",
        _stepping_clock(dt.datetime(2026, 1, 1, tzinfo=dt.UTC), dt.timedelta(seconds=1)),
    )
    first = store.create_session("first")
    second = store.create_session("second")
    third = store.create_session("third")
    store.add_message(first.id, role="user", content="bump")

    results = store.search_sessions()
    assert [s.id for s in results] == [first.id, third.id, second.id]
    for newer, older in zip(results, results[1:]):
        assert newer.updated_at >= older.updated_at

    limited = store.search_sessions(limit=2)
    assert [s.id for s in limited] == [first.id, third.id]


def test_search_rejects_non_positive_limit(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.search_sessions(limit=0)


def test_search_filters_by_creation_date(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    monkeypatch.setattr(
        store,
        "_now",
        _stepping_clock(dt.datetime(2026, 1, 1, tzinfo=dt.UTC), dt.timedelta(days=1)),
    )
    old = store.create_session("old")
    new = store.create_session("new")

    after = store.search_sessions(start_date=dt.datetime(2026, 1, 2))
    assert [s.id for s in after] == [new.id]
    before = store.search_sessions(end_date=dt.datetime(2026, 1, 1, 12, tzinfo=dt.UTC))
    assert [s.id for s in before] == [old.id]


def test_add_message_appends_monotonically(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("T")
    previous = store.require_session(session.id)

    for index in range(5):
        store.add_message(session.id, role="user", content=f"msg {index}")
        current = store.require_session(session.id)
        assert len(current.messages) == len(previous.messages) + 1
        assert current.updated_at >= previous.updated_at
        assert current.updated_at == current.messages[-1].timestamp
        assert current.updated_at >= current.created_at
        previous = current

    timestamps = [m.timestamp for m in previous.messages]
    assert timestamps == sorted(timestamps)
    assert len({m.id for m in previous.messages}) == 5


def test_add_message_never_goes_back_in_time(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    session = store.create_session("T")
    monkeypatch.setattr(store, "_now", lambda: session.created_at - dt.timedelta(hours=1))

    message = store.add_message(session.id, role="assistant", content="late clock")

    assert message.timestamp == session.created_at
    assert store.require_session(session.id).updated_at == session.created_at


def test_add_message_unknown_session(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(SessionNotFoundError):
        store.add_message("nope", role="user", content="x")


def test_add_message_rejects_unknown_role(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("T")
    with pytest.raises(ValidationError):
        store.add_message(session.id, role="tool", content="x")
    assert store.require_session(session.id).messages == []


def test_failed_write_rolls_back_message(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)
    session = store.create_session("T")
    store.add_message(session.id, role="user", content="kept")
    before = store.require_session(session.id)

    def _fail(_sessions) -> None:
        raise WriteFailureError(store.persistence.path, "disk full")

    monkeypatch.setattr(store.persistence, "save", _fail)
    with pytest.raises(PersistenceError) as excinfo:
        store.add_message(session.id, role="user", content="lost")
    assert isinstance(excinfo.value.__cause__, WriteFailureError)

    after = store.require_session(session.id)
    assert len(after.messages) == len(before.messages)
    assert after.updated_at == before.updated_at
    assert store.search_sessions(keyword="lost") == []


def test_failed_write_rolls_back_created_session(tmp_path: Path, monkeypatch) -> None:
    store = _store(tmp_path)

    def _fail(_sessions) -> None:
        raise WriteFailureError(store.persistence.path, "permission denied")

    monkeypatch.setattr(store.persistence, "save", _fail)
    with pytest.raises(PersistenceError):
        store.create_session("T")
    assert store.get_stats()["total_sessions"] == 0


def test_returned_sessions_are_copies(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("T")
    session.messages.append(None)  # type: ignore[arg-type]
    session.tags.append("mutated")

    fresh = store.require_session(session.id)
    assert fresh.messages == []
    assert fresh.tags == []


def test_nested_metadata_is_copied_on_write(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session_meta = {"project": {"name": "demo"}}
    message_meta = {"files": ["a.md"]}
    session = store.create_session("T", metadata=session_meta)
    store.add_message(session.id, role="user", content="x", metadata=message_meta)

    session_meta["project"]["name"] = "changed"
    message_meta["files"].append("b.md")

    fresh = store.require_session(session.id)
    assert fresh.metadata == {"project": {"name": "demo"}}
    assert fresh.messages[0].metadata == {"files": ["a.md"]}


def test_get_session_returns_none_for_unknown(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.get_session("unknown") is None
    with pytest.raises(SessionNotFoundError):
        store.require_session("unknown")


def test_stats_counts_and_storage_size(tmp_path: Path) -> None:
    store = _store(tmp_path)
    empty = store.get_stats()
    assert empty == {"total_sessions": 0, "total_messages": 0, "storage_size": 0, "tags": {}}

    a = store.create_session("A", tags=["x", "y"])
    store.create_session("B", tags=["x"])
    store.add_message(a.id, role="user", content="one")
    store.add_message(a.id, role="assistant", content="two")

    stats = store.get_stats()
    assert stats["total_sessions"] == 2
    assert stats["total_messages"] == 2
    assert stats["storage_size"] == store.persistence.path.stat().st_size
    assert stats["tags"] == {"x": 2, "y": 1}


def test_state_survives_reload(tmp_path: Path) -> None:
    store = _store(tmp_path)
    session = store.create_session("T", tags=["x"], metadata={"project": "p"})
    store.add_message(session.id, role="user", content="hello", metadata={"fileName": "a.md"})

    reloaded = SessionStore(tmp_path / "data")
    reloaded.initialize()
    assert reloaded.require_session(session.id) == store.require_session(session.id)


def test_corrupt_storage_blocks_initialize(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    path = data_dir / "sessions.json"
    path.write_text(json.dumps({"sessions": [{"id": "x"}]}))

    store = SessionStore(data_dir)
    with pytest.raises(CorruptStorageError):
        store.initialize()
    assert not store.initialized
    with pytest.raises(NotInitializedError):
        store.create_session("T")
    assert json.loads(path.read_text()) == {"sessions": [{"id": "x"}]}
