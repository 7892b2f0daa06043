"""Decode raw INTERACTION_CREATE payloads into workflow events.

Component custom ids have the form ``req:<correlation_id>:<action>`` with an
optional trailing ``:<argument>``. The correlation id is the id of the slash
command interaction that started the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ...workflow.render import ACTIONS, CommandEvent, ComponentEvent
from .constants import (
    DISCORD_CUSTOM_ID_MAX_LENGTH,
    INTERACTION_TYPE_APPLICATION_COMMAND,
    INTERACTION_TYPE_MESSAGE_COMPONENT,
)

CUSTOM_ID_PREFIX = "req"
REQUEST_COMMAND_NAME = "request"
QUERY_OPTION_NAME = "query"


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


@dataclass(frozen=True)
class CustomId:
    correlation_id: str
    action: str
    argument: Optional[str] = None


def encode_custom_id(
    correlation_id: str, action: str, argument: Optional[str] = None
) -> str:
    parts = [CUSTOM_ID_PREFIX, correlation_id, action]
    if argument is not None:
        parts.append(argument)
    custom_id = ":".join(parts)
    if len(custom_id) > DISCORD_CUSTOM_ID_MAX_LENGTH:
        raise ValueError(f"custom_id too long: {custom_id!r}")
    return custom_id


def decode_custom_id(custom_id: Optional[str]) -> Optional[CustomId]:
    if not custom_id:
        return None
    parts = custom_id.split(":", 3)
    if len(parts) < 3 or parts[0] != CUSTOM_ID_PREFIX:
        return None
    _, correlation_id, action, *rest = parts
    if not correlation_id or action not in ACTIONS:
        return None
    return CustomId(
        correlation_id=correlation_id,
        action=action,
        argument=rest[0] if rest and rest[0] else None,
    )


def _data(interaction_payload: dict[str, Any]) -> dict[str, Any]:
    data = interaction_payload.get("data")
    return data if isinstance(data, dict) else {}


def _named_options(options: Any) -> list[dict[str, Any]]:
    if not isinstance(options, list):
        return []
    return [
        option
        for option in options
        if isinstance(option, dict) and isinstance(option.get("name"), str)
    ]


def extract_command_path_and_options(
    interaction_payload: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]]:
    """Return the command path (``request``, ``movie``) and its leaf options.

    Subcommand (type 1) and subcommand group (type 2) options extend the path;
    the options of the innermost subcommand are returned by name.
    """
    data = _data(interaction_payload)
    root = data.get("name")
    if not isinstance(root, str) or not root:
        return (), {}
    path = [root]
    options = _named_options(data.get("options"))
    while options and options[0].get("type") in (1, 2):
        path.append(options[0]["name"])
        options = _named_options(options[0].get("options"))
    return tuple(path), {option["name"]: option.get("value") for option in options}


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    # Guild interactions carry ``member.user``; DMs carry ``user``.
    member = interaction_payload.get("member")
    candidates = [member.get("user") if isinstance(member, dict) else None]
    candidates.append(interaction_payload.get("user"))
    for user in candidates:
        if isinstance(user, dict):
            user_id = _as_id(user.get("id"))
            if user_id:
                return user_id
    return None


def _component_values(interaction_payload: dict[str, Any]) -> tuple[str, ...]:
    values = _data(interaction_payload).get("values")
    if not isinstance(values, list):
        return ()
    return tuple(
        str(value)
        for value in values
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    )


def _envelope(
    interaction_payload: dict[str, Any], interaction_type: int
) -> Optional[tuple[str, str, str]]:
    if interaction_payload.get("type") != interaction_type:
        return None
    interaction_id = _as_id(interaction_payload.get("id"))
    token = _as_id(interaction_payload.get("token"))
    user_id = extract_user_id(interaction_payload)
    if not interaction_id or not token or not user_id:
        return None
    return interaction_id, token, user_id


def decode_command_event(interaction_payload: dict[str, Any]) -> Optional[CommandEvent]:
    """Return the ``/request <media> query:<text>`` event, or None."""
    envelope = _envelope(interaction_payload, INTERACTION_TYPE_APPLICATION_COMMAND)
    if envelope is None:
        return None
    path, options = extract_command_path_and_options(interaction_payload)
    if len(path) != 2 or path[0] != REQUEST_COMMAND_NAME:
        return None
    interaction_id, token, user_id = envelope
    query = options.get(QUERY_OPTION_NAME)
    return CommandEvent(
        interaction_id=interaction_id,
        interaction_token=token,
        user_id=user_id,
        media_name=path[1].lower(),
        query=query if isinstance(query, str) else "",
        channel_id=_as_id(interaction_payload.get("channel_id")),
    )


def decode_component_event(
    interaction_payload: dict[str, Any],
) -> Optional[ComponentEvent]:
    envelope = _envelope(interaction_payload, INTERACTION_TYPE_MESSAGE_COMPONENT)
    if envelope is None:
        return None
    custom_id = decode_custom_id(_as_id(_data(interaction_payload).get("custom_id")))
    if custom_id is None:
        return None
    interaction_id, token, user_id = envelope
    return ComponentEvent(
        interaction_id=interaction_id,
        interaction_token=token,
        user_id=user_id,
        correlation_id=custom_id.correlation_id,
        action=custom_id.action,
        argument=custom_id.argument,
        values=_component_values(interaction_payload),
        channel_id=_as_id(interaction_payload.get("channel_id")),
    )
