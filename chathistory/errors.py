from __future__ import annotations


class ChatHistoryError(Exception):
    """Base class for session store failures."""


class NotInitializedError(ChatHistoryError):
    def __init__(self) -> None:
        super().__init__("session store used before initialize()")


class SessionNotFoundError(ChatHistoryError, KeyError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session not found: {session_id}")

    def __str__(self) -> str:
        return f"session not found: {self.session_id}"


class CorruptStorageError(ChatHistoryError):
    def __init__(self, path: object, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"corrupt session storage at {path}: {reason}")


class WriteFailureError(ChatHistoryError):
    def __init__(self, path: object, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"failed to write session storage at {path}: {reason}")


class PersistenceError(ChatHistoryError):
    """A store mutation was rolled back because the durable write failed."""


class ValidationError(ChatHistoryError, ValueError):
    pass
