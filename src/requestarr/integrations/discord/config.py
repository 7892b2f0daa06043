from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ...core.exceptions import ConfigError
from .command_registry import COMMAND_SCOPES
from .constants import DISCORD_INTENT_GUILDS

DEFAULT_BOT_TOKEN_ENV = "REQUESTARR_DISCORD_TOKEN"
DEFAULT_APP_ID_ENV = "REQUESTARR_DISCORD_APP_ID"
DEFAULT_COMMAND_SCOPE = "guild"
DEFAULT_INTENTS = DISCORD_INTENT_GUILDS


@dataclass(frozen=True)
class DiscordCommandRegistration:
    enabled: bool
    scope: str
    guild_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscordBotConfig:
    bot_token: str
    application_id: Optional[str]
    public_followup: bool
    command_registration: DiscordCommandRegistration
    intents: int

    @classmethod
    def from_raw(
        cls, raw: Any, *, env: Optional[Mapping[str, str]] = None
    ) -> "DiscordBotConfig":
        """Read the top-level Discord keys of the config file.

        ``discord_token`` falls back to ``REQUESTARR_DISCORD_TOKEN`` and
        ``application_id`` to ``REQUESTARR_DISCORD_APP_ID``. A missing
        application id is looked up from Discord at startup.
        """
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        environ = os.environ if env is None else env

        bot_token = _parse_optional_string(
            cfg.get("discord_token"), key="discord_token"
        )
        bot_token = bot_token or (environ.get(DEFAULT_BOT_TOKEN_ENV) or "").strip()
        if not bot_token:
            raise ConfigError(
                f"discord_token is required (or set {DEFAULT_BOT_TOKEN_ENV})"
            )

        application_id = _parse_optional_string(
            cfg.get("application_id"), key="application_id"
        )
        application_id = application_id or (
            (environ.get(DEFAULT_APP_ID_ENV) or "").strip() or None
        )

        scope = str(cfg.get("command_scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        if scope not in COMMAND_SCOPES:
            raise ConfigError("command_scope must be 'global' or 'guild'")

        intents = cfg.get("intents", DEFAULT_INTENTS)
        if isinstance(intents, bool) or not isinstance(intents, int) or intents < 0:
            raise ConfigError("intents must be a non-negative integer")

        return cls(
            bot_token=bot_token,
            application_id=application_id,
            public_followup=_parse_bool_or_default(
                cfg.get("public_followup"), default=True, key="public_followup"
            ),
            command_registration=DiscordCommandRegistration(
                enabled=_parse_bool_or_default(
                    cfg.get("register_commands"),
                    default=True,
                    key="register_commands",
                ),
                scope=scope,
                guild_ids=tuple(_parse_string_ids(cfg.get("guild_ids"))),
            ),
            intents=intents,
        )


def _parse_optional_string(value: Any, *, key: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    return value.strip() or None


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be a boolean")
