from __future__ import annotations

import re
from typing import Any, Iterable

from ...backends.models import BackendFamily
from .interactions import QUERY_OPTION_NAME, REQUEST_COMMAND_NAME

# Discord application command option types.
SUB_COMMAND = 1
STRING = 3

CHAT_INPUT = 1
QUERY_MAX_LENGTH = 100

_COMMAND_NAME_RE = re.compile(r"^[-_a-z0-9]{1,32}$")


def _subcommand(media_name: str, family: BackendFamily | None) -> dict[str, Any]:
    noun = family.noun if family is not None else media_name
    return {
        "type": SUB_COMMAND,
        "name": media_name,
        "description": f"Request a {noun}"[:100],
        "options": [
            {
                "type": STRING,
                "name": QUERY_OPTION_NAME,
                "description": f"Title of the {noun} to search for"[:100],
                "required": True,
                "max_length": QUERY_MAX_LENGTH,
            }
        ],
    }


def build_application_commands(
    media_names: Iterable[str],
    *,
    families: dict[str, BackendFamily] | None = None,
) -> list[dict[str, Any]]:
    """Build the ``/request <media> query:<text>`` command.

    One subcommand is emitted per configured media name.
    """
    families = families or {}
    names = sorted(set(media_names))
    for name in names:
        if not _COMMAND_NAME_RE.match(name):
            raise ValueError(f"{name!r} is not a valid Discord subcommand name")
    subcommands = [_subcommand(name, families.get(name)) for name in names]
    if not subcommands:
        raise ValueError("at least one media name is required")
    return [
        {
            "type": CHAT_INPUT,
            "name": REQUEST_COMMAND_NAME,
            "description": "Request a movie or series",
            "options": subcommands,
        }
    ]
