from __future__ import annotations

import logging
import re
import time
from typing import Any, Iterable, Optional

import httpx

from ..core.logging_utils import log_event
from .errors import (
    AUTH_MESSAGE,
    CONNECT_MESSAGE,
    SERVER_ERROR_MESSAGE,
    TIMEOUT_MESSAGE,
    BackendRejected,
    BackendUnreachable,
)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
MAX_REASON_CHARS = 300

_URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


def sanitize_reason(text: str, *, secrets: Iterable[str] = ()) -> str:
    cleaned = text or ""
    for secret in secrets:
        if secret:
            cleaned = cleaned.replace(secret, "***")
    cleaned = _URL_PATTERN.sub("<url>", cleaned)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned).strip()
    if len(cleaned) > MAX_REASON_CHARS:
        cleaned = cleaned[: MAX_REASON_CHARS - 3].rstrip() + "..."
    return cleaned or "The backend rejected the request."


def extract_error_messages(response: httpx.Response) -> str:
    """Pull human-readable text out of an *arr error body.

    Validation failures come back as a list of ``{propertyName,
    errorMessage}`` objects; other errors as ``{message}`` or plain text.
    """
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()
    if isinstance(body, list):
        messages = [
            str(item.get("errorMessage")).strip()
            for item in body
            if isinstance(item, dict) and item.get("errorMessage")
        ]
        return "; ".join(dict.fromkeys(messages))
    if isinstance(body, dict):
        for key in ("message", "errorMessage", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return (response.text or "").strip()


class ArrHttpClient:
    """Thin JSON client for the *arr v3 REST API.

    Maps every transport problem onto the backend error taxonomy and never
    retries; retry policy belongs to the caller.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds),
            headers={"X-Api-Key": api_key, "Accept": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ArrHttpClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def sanitize(self, text: str) -> str:
        return sanitize_reason(text, secrets=(self._api_key, self._base_url))

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Any:
        started = time.monotonic()
        try:
            response = await self._client.request(
                method, path, params=params, json=payload
            )
        except httpx.TimeoutException as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "backend.http.timeout",
                method=method,
                path=path,
                exc=exc,
            )
            raise BackendUnreachable(
                f"{method} {path} timed out", user_message=TIMEOUT_MESSAGE
            ) from exc
        except httpx.TransportError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "backend.http.transport_error",
                method=method,
                path=path,
                exc=exc,
            )
            raise BackendUnreachable(
                f"{method} {path} failed: {type(exc).__name__}",
                user_message=CONNECT_MESSAGE,
            ) from exc

        status_code = response.status_code
        log_event(
            self._logger,
            logging.DEBUG,
            "backend.http.response",
            method=method,
            path=path,
            status=status_code,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )

        if 200 <= status_code < 300:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise BackendRejected(
                    f"{method} {path} returned a non-JSON response",
                    status_code=status_code,
                ) from exc
        if status_code in {401, 403}:
            raise BackendRejected(
                "Backend authentication failed",
                status_code=status_code,
                user_message=AUTH_MESSAGE,
            )
        if status_code >= 500:
            raise BackendUnreachable(
                f"{method} {path} failed with status {status_code}",
                user_message=SERVER_ERROR_MESSAGE,
            )
        raise BackendRejected(
            self.sanitize(extract_error_messages(response)),
            status_code=status_code,
        )
