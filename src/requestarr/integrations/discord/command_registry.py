from __future__ import annotations

import logging
from typing import Any, Iterable

from ...core.logging_utils import log_event
from .rest import DiscordRestClient

COMMAND_SCOPES = ("global", "guild")


def normalize_guild_ids(guild_ids: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted({str(gid).strip() for gid in guild_ids if str(gid).strip()}))


async def sync_commands(
    rest: DiscordRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: Iterable[str] = (),
    logger: logging.Logger,
) -> int:
    """Bulk-overwrite the bot's commands; returns how many scopes were written."""
    normalized_scope = scope.strip().lower()
    if normalized_scope not in COMMAND_SCOPES:
        raise ValueError("scope must be 'global' or 'guild'")

    if normalized_scope == "global":
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="global",
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
        return 1

    targets = normalize_guild_ids(guild_ids)
    if not targets:
        raise ValueError("guild scope requires at least one guild_id")
    for guild_id in targets:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            guild_id=guild_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="guild",
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
    return len(targets)
