from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from ...core.logging_utils import log_event
from .constants import DISCORD_API_BASE_URL
from .errors import DiscordAPIError, DiscordPermanentError, DiscordTransientError

logger = logging.getLogger(__name__)

_RETRYABLE_NETWORK_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
)


def _body_preview(response: httpx.Response) -> str:
    return (response.text or "").strip().replace("\n", " ")[:200]


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return 0.0


def _decode(response: httpx.Response, route: str, *, expect_json: bool) -> Any:
    if not expect_json:
        return None
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as exc:
        raise DiscordAPIError(
            f"Discord returned a non-JSON success response for {route}"
        ) from exc


def _as_object(payload: Any) -> dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


class DiscordRestClient:
    """Minimal Discord REST client for interactions, webhooks and commands.

    Rate limits (429 with ``Retry-After``), 5xx responses and network errors
    are retried up to ``max_retries`` times. Everything else raises at once.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        timeout_seconds: float = 10.0,
        base_url: str = DISCORD_API_BASE_URL,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._headers = {"Authorization": f"Bot {bot_token}"}
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        delay = self._retry_base_delay * (2**attempt) + random.uniform(0, 1)
        return float(min(delay, self._retry_max_delay))

    async def _pause(
        self, event: str, delay: float, *, level: int = logging.WARNING, **fields: Any
    ) -> None:
        log_event(logger, level, event, delay_seconds=round(delay, 2), **fields)
        await asyncio.sleep(delay)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | list[dict[str, Any]] | None = None,
        expect_json: bool = True,
    ) -> Any:
        route = f"{method} {path}"
        rate_limit_waits = 0
        failures = 0
        while True:
            try:
                response = await self._client.request(
                    method, path, json=payload, headers=self._headers
                )
            except httpx.HTTPError as exc:
                if (
                    isinstance(exc, _RETRYABLE_NETWORK_ERRORS)
                    and failures < self._max_retries
                ):
                    failures += 1
                    await self._pause(
                        "discord.rest.network_retry",
                        self._calculate_retry_delay(failures),
                        route=route,
                        error_type=type(exc).__name__,
                        attempt=failures,
                    )
                    continue
                raise DiscordTransientError(
                    f"network error calling Discord {route}: {exc}"
                ) from exc

            status = response.status_code
            if status == 429:
                retry_after = _parse_retry_after(response)
                if retry_after is None or rate_limit_waits >= self._max_retries:
                    raise DiscordTransientError(
                        f"Discord rate limit exceeded for {route}",
                        status_code=status,
                        retry_after=retry_after,
                    )
                rate_limit_waits += 1
                await self._pause(
                    "discord.rest.rate_limited",
                    retry_after,
                    level=logging.INFO,
                    route=route,
                    attempt=rate_limit_waits,
                )
                continue
            if status >= 500 and failures < self._max_retries:
                failures += 1
                await self._pause(
                    "discord.rest.server_retry",
                    self._calculate_retry_delay(failures),
                    route=route,
                    status_code=status,
                    attempt=failures,
                )
                continue
            if status >= 400:
                error_type = (
                    DiscordTransientError if status >= 500 else DiscordPermanentError
                )
                raise error_type(
                    f"Discord {route} failed with status {status}: "
                    f"{_body_preview(response)!r}",
                    status_code=status,
                )
            return _decode(response, route, expect_json=expect_json)

    async def get_gateway_bot(self) -> dict[str, Any]:
        return _as_object(await self._request("GET", "/gateway/bot"))

    async def get_current_application(self) -> dict[str, Any]:
        return _as_object(await self._request("GET", "/applications/@me"))

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        path = f"/applications/{application_id}/commands"
        if guild_id is not None:
            path = f"/applications/{application_id}/guilds/{guild_id}/commands"
        written = await self._request("PUT", path, payload=commands)
        if not isinstance(written, list):
            return []
        return [item for item in written if isinstance(item, dict)]

    async def create_interaction_response(
        self, *, interaction_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> None:
        """Answer an interaction; Discord allows one answer within 3 seconds."""
        path = f"/interactions/{interaction_id}/{interaction_token}/callback"
        await self._request("POST", path, payload=payload, expect_json=False)

    async def create_followup_message(
        self, *, application_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        path = f"/webhooks/{application_id}/{interaction_token}"
        return _as_object(await self._request("POST", path, payload=payload))

    async def edit_original_interaction_response(
        self, *, application_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        path = f"/webhooks/{application_id}/{interaction_token}/messages/@original"
        return _as_object(await self._request("PATCH", path, payload=payload))

    async def create_channel_message(
        self, *, channel_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        path = f"/channels/{channel_id}/messages"
        return _as_object(await self._request("POST", path, payload=payload))
