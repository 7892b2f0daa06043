from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer

from ....backends.registry import BackendRegistry, build_registry
from ....core.config import DEFAULT_CONFIG_PATH, AppConfig, load_app_config
from ....core.exceptions import ConfigError
from ....core.logging_utils import setup_rotating_logger
from ....integrations.discord.command_registry import sync_commands
from ....integrations.discord.config import DiscordBotConfig
from ....integrations.discord.errors import DiscordAPIError
from ....integrations.discord.rest import DiscordRestClient
from ....integrations.discord.service import (
    build_registry_commands,
    create_discord_bot_service,
)

LOGGER_NAME = "requestarr"

_CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to the TOML config file"
)


def _load(path: Path) -> tuple[AppConfig, DiscordBotConfig]:
    config = load_app_config(path)
    return config, DiscordBotConfig.from_raw(config.raw)


def describe_registry(registry: BackendRegistry) -> list[str]:
    lines = []
    for name in registry.media_names:
        entry = registry.resolve(name)
        prompted = ", ".join(s.value for s in entry.unresolved_settings) or "none"
        lines.append(
            f"{name}: {entry.family.value} at {entry.connection.url} "
            f"(prompted settings: {prompted})"
        )
    return lines


async def _sync_discord_application_commands(
    config: AppConfig,
    discord_config: DiscordBotConfig,
    *,
    logger: logging.Logger,
    rest_client_factory: Callable[..., Any] = DiscordRestClient,
    sync_func: Callable[..., Awaitable[int]] = sync_commands,
) -> int:
    registration = discord_config.command_registration
    if registration.scope == "guild" and not registration.guild_ids:
        raise ConfigError("command_scope 'guild' requires guild_ids in the config")
    registry = build_registry(config.backends, logger=logger)
    try:
        commands = build_registry_commands(registry)
    finally:
        await registry.close()
    async with rest_client_factory(bot_token=discord_config.bot_token) as rest:
        application_id = discord_config.application_id
        if not application_id:
            application = await rest.get_current_application()
            application_id = str(application.get("id") or "")
        if not application_id:
            raise ConfigError("unable to determine the Discord application id")
        return await sync_func(
            rest,
            application_id=application_id,
            commands=commands,
            scope=registration.scope,
            guild_ids=registration.guild_ids,
            logger=logger,
        )


def register_bot_commands(app: typer.Typer, *, raise_exit: Callable) -> None:
    @app.command("run")
    def run(config_path: Path = _CONFIG_OPTION) -> None:
        """Connect to Discord and serve /request commands."""
        try:
            config, _ = _load(config_path)
            logger = setup_rotating_logger(
                LOGGER_NAME, level=config.log_level, log_file=config.log_file
            )
            service = create_discord_bot_service(config, logger=logger)
        except ConfigError as exc:
            raise_exit(str(exc), cause=exc)
        try:
            asyncio.run(service.run_forever())
        except DiscordAPIError as exc:
            raise_exit(str(exc), cause=exc)
        except KeyboardInterrupt:
            typer.echo("Bot stopped.")

    @app.command("check-config")
    def check_config(config_path: Path = _CONFIG_OPTION) -> None:
        """Validate the config file and show the configured backends."""
        try:
            config, discord_config = _load(config_path)
            registry = build_registry(
                config.backends, logger=logging.getLogger(LOGGER_NAME)
            )
        except ConfigError as exc:
            raise_exit(str(exc), cause=exc)
        try:
            for line in describe_registry(registry):
                typer.echo(line)
        finally:
            asyncio.run(registry.close())
        registration = discord_config.command_registration
        typer.echo(
            f"commands: {registration.scope} scope, "
            f"public follow-up {'on' if discord_config.public_followup else 'off'}, "
            f"session timeout {config.session_timeout_seconds}s"
        )

    @app.command("register-commands")
    def register_commands(config_path: Path = _CONFIG_OPTION) -> None:
        """Push the /request command definition to Discord."""
        try:
            config, discord_config = _load(config_path)
            logger = setup_rotating_logger(LOGGER_NAME, level=config.log_level)
            asyncio.run(
                _sync_discord_application_commands(
                    config, discord_config, logger=logger
                )
            )
        except (ConfigError, DiscordAPIError, ValueError) as exc:
            raise_exit(str(exc), cause=exc)
        typer.echo("Discord application commands synchronized.")
