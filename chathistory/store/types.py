from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, TypedDict

MESSAGE_ROLES = ("user", "assistant", "system")


def parse_timestamp(value: object, *, key: str) -> dt.datetime:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} must be an ISO timestamp string")
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"{key} is not an ISO timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def format_timestamp(value: dt.datetime) -> str:
    return value.astimezone(dt.UTC).isoformat()


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_dict(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object")
    return dict(value)


@dataclass
class Message:
    id: str
    role: str
    content: str
    timestamp: dt.datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: object) -> Message:
        if not isinstance(data, dict):
            raise ValueError("message must be an object")
        role = _require_str(data, "role")
        if role not in MESSAGE_ROLES:
            raise ValueError(f"unknown message role: {role!r}")
        return cls(
            id=_require_str(data, "id"),
            role=role,
            content=_require_str(data, "content"),
            timestamp=parse_timestamp(data.get("timestamp"), key="timestamp"),
            metadata=_optional_dict(data, "metadata"),
        )


@dataclass
class Session:
    id: str
    title: str
    created_at: dt.datetime
    updated_at: dt.datetime
    messages: list[Message] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [message.to_dict() for message in self.messages],
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "tags": list(self.tags),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: object) -> Session:
        if not isinstance(data, dict):
            raise ValueError("session must be an object")
        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list):
            raise ValueError("messages must be a list")
        raw_tags = data.get("tags", [])
        if not isinstance(raw_tags, list) or not all(isinstance(t, str) for t in raw_tags):
            raise ValueError("tags must be a list of strings")
        return cls(
            id=_require_str(data, "id"),
            title=_require_str(data, "title"),
            created_at=parse_timestamp(data.get("createdAt"), key="createdAt"),
            updated_at=parse_timestamp(data.get("updatedAt"), key="updatedAt"),
            messages=[Message.from_dict(item) for item in raw_messages],
            tags=list(raw_tags),
            metadata=_optional_dict(data, "metadata"),
        )


class SessionStats(TypedDict):
    total_sessions: int
    total_messages: int
    storage_size: int
    tags: dict[str, int]
