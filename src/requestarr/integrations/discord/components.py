"""Discord message component payload builders."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ...workflow.render import ButtonStyle, ComponentKind, ComponentSpec
from .constants import (
    DISCORD_BUTTON_LABEL_MAX_LENGTH,
    DISCORD_SELECT_DESCRIPTION_MAX_LENGTH,
    DISCORD_SELECT_LABEL_MAX_LENGTH,
    DISCORD_SELECT_OPTION_MAX_OPTIONS,
)
from .interactions import encode_custom_id

DISCORD_BUTTON_STYLE_PRIMARY = 1
DISCORD_BUTTON_STYLE_SECONDARY = 2
DISCORD_BUTTON_STYLE_SUCCESS = 3
DISCORD_BUTTON_STYLE_DANGER = 4

# An action row holds at most five buttons.
DISCORD_ACTION_ROW_MAX_BUTTONS = 5

_BUTTON_STYLES = {
    ButtonStyle.PRIMARY: DISCORD_BUTTON_STYLE_PRIMARY,
    ButtonStyle.SECONDARY: DISCORD_BUTTON_STYLE_SECONDARY,
    ButtonStyle.SUCCESS: DISCORD_BUTTON_STYLE_SUCCESS,
    ButtonStyle.DANGER: DISCORD_BUTTON_STYLE_DANGER,
}


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_action_row(components: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": 1,
        "components": components,
    }


def build_button(
    label: str,
    custom_id: str,
    *,
    style: int = DISCORD_BUTTON_STYLE_SECONDARY,
    disabled: bool = False,
) -> dict[str, Any]:
    return {
        "type": 2,
        "style": style,
        "label": _clip(label, DISCORD_BUTTON_LABEL_MAX_LENGTH),
        "custom_id": custom_id,
        "disabled": disabled,
    }


def build_select_menu(
    custom_id: str,
    options: list[dict[str, Any]],
    *,
    placeholder: Optional[str] = None,
    disabled: bool = False,
) -> dict[str, Any]:
    select: dict[str, Any] = {
        "type": 3,
        "custom_id": custom_id,
        "options": options[:DISCORD_SELECT_OPTION_MAX_OPTIONS],
        "min_values": 1,
        "max_values": 1,
        "disabled": disabled,
    }
    if placeholder:
        select["placeholder"] = _clip(placeholder, DISCORD_SELECT_LABEL_MAX_LENGTH)
    return select


def build_select_option(
    label: str,
    value: str,
    *,
    description: Optional[str] = None,
) -> dict[str, Any]:
    option: dict[str, Any] = {
        "label": _clip(label, DISCORD_SELECT_LABEL_MAX_LENGTH),
        "value": value[:100],
    }
    if description:
        option["description"] = _clip(
            " ".join(description.split()), DISCORD_SELECT_DESCRIPTION_MAX_LENGTH
        )
    return option


def render_components(specs: Iterable[ComponentSpec]) -> list[dict[str, Any]]:
    """Lay out component specs as action rows.

    Each select menu gets a row of its own; consecutive buttons share rows.
    """
    rows: list[dict[str, Any]] = []
    buttons: list[dict[str, Any]] = []

    def flush_buttons() -> None:
        while buttons:
            rows.append(build_action_row(buttons[:DISCORD_ACTION_ROW_MAX_BUTTONS]))
            del buttons[:DISCORD_ACTION_ROW_MAX_BUTTONS]

    for spec in specs:
        custom_id = encode_custom_id(spec.correlation_id, spec.action, spec.argument)
        if spec.kind is ComponentKind.BUTTON:
            buttons.append(
                build_button(spec.label, custom_id, style=_BUTTON_STYLES[spec.style])
            )
            continue
        flush_buttons()
        options = [
            build_select_option(
                choice.label, choice.value, description=choice.description
            )
            for choice in spec.choices
        ]
        rows.append(
            build_action_row(
                [build_select_menu(custom_id, options, placeholder=spec.label)]
            )
        )
    flush_buttons()
    return rows
