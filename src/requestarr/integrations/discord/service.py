from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional

from ...backends.registry import BackendRegistry, build_registry
from ...core.config import AppConfig
from ...core.logging_utils import log_event
from ...workflow.dispatcher import CommandDispatcher
from ...workflow.machine import GENERIC_FAILURE_MESSAGE
from ...workflow.render import (
    CommandEvent,
    ComponentEvent,
    RenderDirective,
    ResponseMode,
)
from ...workflow.session import Session
from ...workflow.store import SessionStore
from .command_registry import sync_commands
from .commands import build_application_commands
from .components import render_components
from .config import DiscordBotConfig
from .constants import (
    CALLBACK_DEFERRED_CHANNEL_MESSAGE,
    CALLBACK_DEFERRED_UPDATE_MESSAGE,
    DISCORD_EPHEMERAL_FLAG,
    DISCORD_MAX_MESSAGE_LENGTH,
)
from .errors import DiscordAPIError
from .gateway import DiscordGatewayClient
from .interactions import decode_command_event, decode_component_event
from .rest import DiscordRestClient

# Mentions in announcements render as names but never ping.
_NO_PINGS: dict[str, Any] = {"parse": []}


def truncate_for_discord(
    text: str, *, max_len: int = DISCORD_MAX_MESSAGE_LENGTH
) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3].rstrip() + "..."


def build_registry_commands(registry: BackendRegistry) -> list[dict[str, Any]]:
    families = {name: registry.resolve(name).family for name in registry.media_names}
    return build_application_commands(registry.media_names, families=families)


class DiscordBotService:
    """Connects the gateway to the command dispatcher.

    Each INTERACTION_CREATE is acknowledged at once and then handled in its
    own task. The resulting directive edits the deferred message, sends an
    ephemeral notice or posts a public announcement.
    """

    def __init__(
        self,
        config: DiscordBotConfig,
        dispatcher: CommandDispatcher,
        registry: BackendRegistry,
        *,
        logger: logging.Logger,
        rest_client: Optional[DiscordRestClient] = None,
        gateway_client: Optional[DiscordGatewayClient] = None,
        eviction_interval_seconds: float = 60.0,
    ) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._registry = registry
        self._logger = logger
        self._eviction_interval_seconds = eviction_interval_seconds
        self._application_id = config.application_id

        self._rest = (
            rest_client
            if rest_client is not None
            else DiscordRestClient(bot_token=config.bot_token)
        )
        self._owns_rest = rest_client is None

        self._gateway = (
            gateway_client
            if gateway_client is not None
            else DiscordGatewayClient(
                bot_token=config.bot_token,
                intents=config.intents,
                logger=logger,
            )
        )
        self._owns_gateway = gateway_client is None

        self._tasks: set[asyncio.Task[None]] = set()
        self._commands_synced = False

    @property
    def store(self) -> SessionStore:
        return self._dispatcher.store

    async def run_forever(self) -> None:
        eviction_task: Optional[asyncio.Task[None]] = None
        try:
            await self._resolve_application_id()
            eviction_task = asyncio.create_task(
                self.store.run_eviction_loop(
                    interval_seconds=self._eviction_interval_seconds,
                    on_evicted=self._on_session_evicted,
                )
            )
            log_event(
                self._logger,
                logging.INFO,
                "discord.bot.starting",
                application_id=self._application_id,
                backends=list(self._registry.media_names),
            )
            await self._gateway.run(self._on_dispatch)
        finally:
            if eviction_task is not None:
                eviction_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await eviction_task
            await self._cancel_pending_tasks()
            await self._shutdown()

    async def _resolve_application_id(self) -> str:
        if self._application_id:
            return self._application_id
        payload = await self._rest.get_current_application()
        application_id = str(payload.get("id") or "").strip()
        if not application_id:
            raise DiscordAPIError("Discord did not report an application id")
        self._application_id = application_id
        return application_id

    async def _on_dispatch(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type == "READY":
            await self._on_ready(payload)
        elif event_type == "INTERACTION_CREATE":
            task = asyncio.create_task(self._handle_interaction(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _on_ready(self, payload: dict[str, Any]) -> None:
        registration = self._config.command_registration
        if not registration.enabled or self._commands_synced:
            return
        guild_ids = registration.guild_ids
        if registration.scope == "guild" and not guild_ids:
            guilds = payload.get("guilds")
            guild_ids = tuple(
                str(guild["id"])
                for guild in (guilds if isinstance(guilds, list) else [])
                if isinstance(guild, dict) and guild.get("id")
            )
        if registration.scope == "guild" and not guild_ids:
            log_event(self._logger, logging.WARNING, "discord.commands.sync.no_guilds")
            return
        commands = build_registry_commands(self._registry)
        try:
            await sync_commands(
                self._rest,
                application_id=await self._resolve_application_id(),
                commands=commands,
                scope=registration.scope,
                guild_ids=guild_ids,
                logger=self._logger,
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.sync.startup_failed",
                scope=registration.scope,
                command_count=len(commands),
                exc=exc,
            )
            return
        self._commands_synced = True

    async def _handle_interaction(self, interaction_payload: dict[str, Any]) -> None:
        try:
            command = decode_command_event(interaction_payload)
            if command is not None:
                await self._handle_command(command)
                return
            component = decode_component_event(interaction_payload)
            if component is not None:
                await self._handle_component(component)
                return
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.interaction.ignored",
                interaction_type=interaction_payload.get("type"),
            )
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.unhandled_error",
                interaction_id=interaction_payload.get("id"),
                exc=exc,
            )

    async def _handle_command(self, event: CommandEvent) -> None:
        acknowledged = await self._acknowledge(
            event.interaction_id,
            event.interaction_token,
            {
                "type": CALLBACK_DEFERRED_CHANNEL_MESSAGE,
                "data": {"flags": DISCORD_EPHEMERAL_FLAG},
            },
        )
        if not acknowledged:
            return
        try:
            directive = await self._dispatcher.on_command(event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.command.failed",
                correlation_id=event.correlation_id,
                exc=exc,
            )
            directive = RenderDirective(GENERIC_FAILURE_MESSAGE)
        # The deferred "thinking" message must always be replaced.
        await self._edit_original(event.interaction_token, directive)
        await self._announce(event.channel_id, directive)

    async def _handle_component(self, event: ComponentEvent) -> None:
        acknowledged = await self._acknowledge(
            event.interaction_id,
            event.interaction_token,
            {"type": CALLBACK_DEFERRED_UPDATE_MESSAGE},
        )
        if not acknowledged:
            return
        directive = await self._dispatcher.on_component(event)
        if directive.mode is ResponseMode.NOTICE:
            await self._send_notice(event.interaction_token, directive.content)
        else:
            await self._edit_original(event.interaction_token, directive)
        await self._announce(event.channel_id, directive)

    async def _on_session_evicted(self, session: Session) -> None:
        if session.interaction_token is None or not session.token_valid(
            self.store.now()
        ):
            return
        directive = self._dispatcher.workflow.render_timeout(session)
        await self._edit_original(session.interaction_token, directive)

    async def _acknowledge(
        self, interaction_id: str, interaction_token: str, payload: dict[str, Any]
    ) -> bool:
        try:
            await self._rest.create_interaction_response(
                interaction_id=interaction_id,
                interaction_token=interaction_token,
                payload=payload,
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.interaction.ack_failed",
                interaction_id=interaction_id,
                exc=exc,
            )
            return False
        return True

    async def _edit_original(
        self, interaction_token: str, directive: RenderDirective
    ) -> None:
        payload = {
            "content": truncate_for_discord(directive.content),
            "components": render_components(directive.components),
        }
        try:
            await self._rest.edit_original_interaction_response(
                application_id=await self._resolve_application_id(),
                interaction_token=interaction_token,
                payload=payload,
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.response.edit_failed",
                stage=directive.stage.value if directive.stage else None,
                exc=exc,
            )

    async def _send_notice(self, interaction_token: str, content: str) -> None:
        try:
            await self._rest.create_followup_message(
                application_id=await self._resolve_application_id(),
                interaction_token=interaction_token,
                payload={
                    "content": truncate_for_discord(content),
                    "flags": DISCORD_EPHEMERAL_FLAG,
                },
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger, logging.WARNING, "discord.response.notice_failed", exc=exc
            )

    async def _announce(
        self, channel_id: Optional[str], directive: RenderDirective
    ) -> None:
        if not directive.announcement or not channel_id:
            return
        try:
            await self._rest.create_channel_message(
                channel_id=channel_id,
                payload={
                    "content": truncate_for_discord(directive.announcement),
                    "allowed_mentions": _NO_PINGS,
                },
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.response.announcement_failed",
                channel_id=channel_id,
                exc=exc,
            )

    async def _cancel_pending_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._tasks.clear()

    async def _shutdown(self) -> None:
        if self._owns_gateway:
            with contextlib.suppress(Exception):
                await self._gateway.stop()
        if self._owns_rest:
            with contextlib.suppress(Exception):
                await self._rest.close()
        await self._registry.close()
        log_event(self._logger, logging.INFO, "discord.bot.stopped")


def create_discord_bot_service(
    config: AppConfig, *, logger: logging.Logger
) -> DiscordBotService:
    discord_config = DiscordBotConfig.from_raw(config.raw)
    registry = build_registry(config.backends, logger=logger)
    store = SessionStore(timeout_seconds=config.session_timeout_seconds, logger=logger)
    dispatcher = CommandDispatcher(
        store,
        registry,
        public_followup=discord_config.public_followup,
        logger=logger,
    )
    return DiscordBotService(
        discord_config,
        dispatcher,
        registry,
        logger=logger,
        eviction_interval_seconds=config.eviction_interval_seconds,
    )
