"""Backend error hierarchy.

Every failure an adapter surfaces is one of these types. Text in
``user_message`` and ``reason`` is already sanitized and may be shown to
Discord users.
"""

from __future__ import annotations

from typing import Optional

from ..core.exceptions import PermanentError, RequestarrError, TransientError

UNAVAILABLE_MESSAGE = "The backend is unavailable right now. Please try again later."
TIMEOUT_MESSAGE = "Request timed out. The backend server may be slow or unavailable."
CONNECT_MESSAGE = "Could not connect to the backend server. Please try again later."
SERVER_ERROR_MESSAGE = (
    "The backend server encountered an error. Please try again later."
)
AUTH_MESSAGE = "Backend authentication error. Please contact your administrator."


class BackendError(RequestarrError):
    """Base backend adapter error."""


class BackendUnreachable(BackendError, TransientError):
    """Network failure, timeout or backend-side 5xx."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message, user_message=user_message or UNAVAILABLE_MESSAGE)


class BackendRejected(BackendError, PermanentError):
    """The backend refused the request (validation or authentication)."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity

    def __init__(
        self,
        reason: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(reason, user_message=user_message or reason)
        self.reason = reason
        self.status_code = status_code


class UnknownBackend(PermanentError):
    """No backend is configured under the requested media name."""

    def __init__(self, media_name: str) -> None:
        super().__init__(
            f"unknown backend: {media_name!r}",
            user_message=f"No backend is configured for `{media_name}`.",
        )
        self.media_name = media_name
