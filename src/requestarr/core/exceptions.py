"""Shared error hierarchy.

Adapters and the workflow compose these base types so retry and severity
behaviour stays consistent across backends and the Discord surface.
"""

from __future__ import annotations

from typing import Optional


class RequestarrError(Exception):
    """Base error for the request bot."""

    recoverable: bool = False
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(RequestarrError):
    """Failure that may succeed when retried (network, timeouts)."""

    recoverable = True
    severity = "warning"


class PermanentError(RequestarrError):
    """Failure that will not change on retry (validation, auth, config)."""

    recoverable = False
    severity = "error"


class ConfigError(PermanentError):
    """Raised when the configuration file is missing or invalid."""
