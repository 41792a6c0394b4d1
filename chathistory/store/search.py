from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence

from .types import Session


def matches_keyword(session: Session, keyword: str) -> bool:
    needle = keyword.lower()
    if needle in session.title.lower():
        return True
    return any(needle in message.content.lower() for message in session.messages)


def matches_any_tag(session: Session, tags: Sequence[str]) -> bool:
    return any(tag in session.tags for tag in tags)


def within_dates(
    session: Session,
    start_date: dt.datetime | None,
    end_date: dt.datetime | None,
) -> bool:
    if start_date is not None and session.created_at < start_date:
        return False
    if end_date is not None and session.created_at > end_date:
        return False
    return True


def filter_sessions(
    sessions: Iterable[Session],
    *,
    keyword: str | None = None,
    tags: Sequence[str] | None = None,
    start_date: dt.datetime | None = None,
    end_date: dt.datetime | None = None,
    limit: int | None = None,
) -> list[Session]:
    results = [
        session
        for session in sessions
        if (not keyword or matches_keyword(session, keyword))
        and (not tags or matches_any_tag(session, tags))
        and within_dates(session, start_date, end_date)
    ]
    # Most recently active first; callers rely on this ordering.
    results.sort(key=lambda session: session.updated_at, reverse=True)
    if limit is not None:
        results = results[:limit]
    return results
