"""Discord gateway connection: identify, heartbeat and dispatch delivery."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import platform
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ...core.logging_utils import log_event
from .constants import DISCORD_GATEWAY_URL
from .errors import DiscordAPIError, DiscordPermanentError
from .rest import DiscordRestClient

OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2
OP_RECONNECT = 7
OP_INVALID_SESSION = 9
OP_HELLO = 10
OP_HEARTBEAT_ACK = 11

# Bad token, bad shard, sharding required, bad API version, bad or
# disallowed intents. Reconnecting cannot fix any of these.
FATAL_GATEWAY_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})

ZOMBIE_CLOSE_CODE = 4000

DispatchHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class GatewayFrame:
    op: int
    d: Any = None
    s: Optional[int] = None
    t: Optional[str] = None


@dataclass(frozen=True)
class _ConnectionOutcome:
    ready: bool = False
    fatal_reason: Optional[str] = None


def build_identify_payload(*, bot_token: str, intents: int) -> dict[str, Any]:
    properties = {
        "os": platform.system().lower() or "unknown",
        "browser": "requestarr",
        "device": "requestarr",
    }
    data = {"token": bot_token, "intents": intents, "properties": properties}
    return {"op": OP_IDENTIFY, "d": data}


def build_heartbeat_payload(sequence: Optional[int]) -> str:
    return json.dumps({"op": OP_HEARTBEAT, "d": sequence})


def parse_gateway_frame(raw: str | bytes | dict[str, Any]) -> GatewayFrame:
    if isinstance(raw, dict):
        decoded: Any = dict(raw)
    else:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        decoded = json.loads(text)
    if not isinstance(decoded, dict):
        raise DiscordAPIError("gateway frame is not a JSON object")
    op = decoded.get("op")
    if isinstance(op, bool) or not isinstance(op, int):
        raise DiscordAPIError(f"gateway frame has no numeric op: {decoded!r}")
    sequence = decoded.get("s")
    name = decoded.get("t")
    return GatewayFrame(
        op=op,
        d=decoded.get("d"),
        s=sequence if isinstance(sequence, int) else None,
        t=name if isinstance(name, str) else None,
    )


def calculate_reconnect_backoff(
    attempt: int,
    *,
    base_seconds: float = 1.0,
    max_seconds: float = 30.0,
    rand_float: Callable[[], float] = random.random,
) -> float:
    """Doubling delay with +/-20% jitter, never above ``max_seconds``."""
    if max_seconds <= 0.0 or base_seconds <= 0.0:
        return 0.0
    # Past 2**30 every delay is capped anyway; the clamp keeps floats finite.
    exponent = min(max(attempt, 0), 30)
    jitter = 0.8 + 0.4 * min(max(rand_float(), 0.0), 1.0)
    return float(min(max_seconds, base_seconds * 2**exponent * jitter))


def gateway_close_code(exc: BaseException) -> int | None:
    for source in (getattr(exc, "rcvd", None), exc):
        code = getattr(source, "code", None)
        if isinstance(code, int):
            return code
    return None


class _Heartbeat:
    """Periodic heartbeat for one connection.

    A beat that goes unacknowledged until the next one is due marks the
    connection as a zombie; the socket is closed so ``run`` reconnects.
    """

    def __init__(
        self,
        websocket: Any,
        interval_seconds: float,
        sequence: Callable[[], Optional[int]],
        logger: logging.Logger,
    ) -> None:
        self._websocket = websocket
        self._interval_seconds = interval_seconds
        self._sequence = sequence
        self._logger = logger
        self.acked = True
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._beat())

    async def _beat(self) -> None:
        # Jittered first beat; reconnecting clients should not beat in step.
        await asyncio.sleep(self._interval_seconds * random.random())
        while True:
            if not self.acked:
                log_event(self._logger, logging.WARNING, "discord.gateway.zombie")
                await self._websocket.close(code=ZOMBIE_CLOSE_CODE)
                return
            self.acked = False
            await self._websocket.send(build_heartbeat_payload(self._sequence()))
            await asyncio.sleep(self._interval_seconds)

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            log_event(
                self._logger, logging.DEBUG, "discord.gateway.heartbeat_ended", exc=exc
            )


class DiscordGatewayClient:
    """Keeps one gateway connection alive and hands DISPATCH events over.

    Ordinary disconnects are retried with backoff. A permanent REST failure or
    a fatal close code parks the client until ``stop`` is called.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        intents: int,
        logger: logging.Logger,
        gateway_url: str | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._intents = intents
        self._logger = logger
        self._gateway_url = gateway_url
        self._sequence: Optional[int] = None
        self._heartbeat: Optional[_Heartbeat] = None
        self._stop_event = asyncio.Event()
        self._websocket: Any = None

    async def stop(self) -> None:
        self._stop_event.set()
        await self._cancel_heartbeat()
        websocket = self._websocket
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close()

    async def run(self, on_dispatch: DispatchHandler) -> None:
        attempt = 0
        while not self._stop_event.is_set():
            outcome = await self._connect_once(on_dispatch)
            if self._stop_event.is_set():
                return
            if outcome.fatal_reason is not None:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "discord.gateway.halted",
                    reason=outcome.fatal_reason,
                    hint="Fix the bot token or intents and restart the service.",
                )
                await self._stop_event.wait()
                return
            attempt = 0 if outcome.ready else attempt
            delay = calculate_reconnect_backoff(attempt)
            attempt += 1
            await asyncio.sleep(delay)

    async def _connect_once(self, on_dispatch: DispatchHandler) -> _ConnectionOutcome:
        try:
            url = await self._resolve_gateway_url()
            async with websockets.connect(url) as websocket:
                self._websocket = websocket
                ready = await self._run_connection(websocket, on_dispatch)
            return _ConnectionOutcome(ready=ready)
        except asyncio.CancelledError:
            raise
        except DiscordPermanentError as exc:
            return _ConnectionOutcome(fatal_reason=str(exc))
        except ConnectionClosed as exc:
            code = gateway_close_code(exc)
            if code in FATAL_GATEWAY_CLOSE_CODES:
                return _ConnectionOutcome(fatal_reason=f"gateway_close_code={code}")
            log_event(
                self._logger, logging.INFO, "discord.gateway.closed", close_code=code
            )
        except Exception as exc:
            log_event(self._logger, logging.WARNING, "discord.gateway.error", exc=exc)
        finally:
            self._websocket = None
            await self._cancel_heartbeat()
        return _ConnectionOutcome()

    async def _resolve_gateway_url(self) -> str:
        if self._gateway_url:
            return self._gateway_url
        async with DiscordRestClient(bot_token=self._bot_token) as rest:
            payload = await rest.get_gateway_bot()
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            return DISCORD_GATEWAY_URL
        if "?" in url:
            return url
        return f"{url}?v=10&encoding=json"

    async def _run_connection(
        self, websocket: Any, on_dispatch: DispatchHandler
    ) -> bool:
        """Serve one connection; return whether READY was seen."""
        hello = parse_gateway_frame(await websocket.recv())
        if hello.op != OP_HELLO:
            raise DiscordAPIError(f"expected HELLO from the gateway, got op {hello.op}")
        hello_data = hello.d if isinstance(hello.d, dict) else {}
        interval_ms = hello_data.get("heartbeat_interval")
        if not isinstance(interval_ms, (int, float)) or interval_ms <= 0:
            raise DiscordAPIError("HELLO frame has no heartbeat_interval")

        self._heartbeat = _Heartbeat(
            websocket,
            interval_ms / 1000.0,
            lambda: self._sequence,
            self._logger,
        )
        self._heartbeat.start()
        identify = build_identify_payload(
            bot_token=self._bot_token, intents=self._intents
        )
        await websocket.send(json.dumps(identify))

        ready = False
        async for raw in websocket:
            frame = parse_gateway_frame(raw)
            if frame.s is not None:
                self._sequence = frame.s
            if frame.op in (OP_RECONNECT, OP_INVALID_SESSION):
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.gateway.reconnect_requested",
                    op=frame.op,
                )
                break
            ready = await self._handle_frame(websocket, frame, on_dispatch) or ready
        return ready

    async def _handle_frame(
        self, websocket: Any, frame: GatewayFrame, on_dispatch: DispatchHandler
    ) -> bool:
        if frame.op == OP_HEARTBEAT:
            await websocket.send(build_heartbeat_payload(self._sequence))
        elif frame.op == OP_HEARTBEAT_ACK:
            if self._heartbeat is not None:
                self._heartbeat.acked = True
        elif frame.op == OP_DISPATCH and frame.t:
            if isinstance(frame.d, dict):
                await on_dispatch(frame.t, frame.d)
            return frame.t == "READY"
        return False

    async def _cancel_heartbeat(self) -> None:
        heartbeat, self._heartbeat = self._heartbeat, None
        if heartbeat is not None:
            await heartbeat.cancel()
