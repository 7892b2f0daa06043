from __future__ import annotations

import logging
from typing import Any

import pytest

from requestarr.integrations.discord.command_registry import (
    normalize_guild_ids,
    sync_commands,
)

COMMANDS = [{"type": 1, "name": "request", "description": "Request a movie"}]


class _FakeRest:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(
            {"application_id": application_id, "guild_id": guild_id}
        )
        return commands


def test_normalize_guild_ids() -> None:
    assert normalize_guild_ids([" 2", "1", "", "1", 3]) == ("1", "2", "3")


@pytest.mark.anyio
async def test_global_scope_writes_once() -> None:
    rest = _FakeRest()

    written = await sync_commands(
        rest,  # type: ignore[arg-type]
        application_id="app-1",
        commands=COMMANDS,
        scope="Global",
        guild_ids=["ignored"],
        logger=logging.getLogger("test"),
    )

    assert written == 1
    assert rest.calls == [{"application_id": "app-1", "guild_id": None}]


@pytest.mark.anyio
async def test_guild_scope_writes_each_guild() -> None:
    rest = _FakeRest()

    written = await sync_commands(
        rest,  # type: ignore[arg-type]
        application_id="app-1",
        commands=COMMANDS,
        scope="guild",
        guild_ids=["g2", "g1", "g2"],
        logger=logging.getLogger("test"),
    )

    assert written == 2
    assert [call["guild_id"] for call in rest.calls] == ["g1", "g2"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "scope, guild_ids, message",
    [
        ("everywhere", (), "scope must be"),
        ("guild", (), "at least one guild_id"),
    ],
)
async def test_invalid_registration_is_rejected(scope, guild_ids, message) -> None:
    rest = _FakeRest()

    with pytest.raises(ValueError, match=message):
        await sync_commands(
            rest,  # type: ignore[arg-type]
            application_id="app-1",
            commands=COMMANDS,
            scope=scope,
            guild_ids=guild_ids,
            logger=logging.getLogger("test"),
        )

    assert rest.calls == []
