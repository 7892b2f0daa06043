from __future__ import annotations

from ..core.exceptions import PermanentError, RequestarrError

EXPIRED_MESSAGE = "This request has expired, please start again."


class SessionError(RequestarrError):
    """Base error for session store lookups; always recoverable."""

    recoverable = True
    severity = "info"


class DuplicateSession(SessionError):
    def __init__(self, correlation_id: str) -> None:
        super().__init__(
            f"session {correlation_id!r} is already live",
            user_message="This request is already being processed.",
        )
        self.correlation_id = correlation_id


class SessionNotFound(SessionError):
    def __init__(self, correlation_id: str, message: str | None = None) -> None:
        super().__init__(
            message or f"no live session {correlation_id!r}",
            user_message=EXPIRED_MESSAGE,
        )
        self.correlation_id = correlation_id


class SessionExpired(SessionNotFound):
    def __init__(self, correlation_id: str) -> None:
        super().__init__(correlation_id, f"session {correlation_id!r} expired")


class InvalidTransition(PermanentError):
    """Raised when a session would move backwards through its stages."""
