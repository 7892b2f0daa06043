from __future__ import annotations

import pytest

from requestarr.integrations.discord.interactions import (
    CustomId,
    decode_command_event,
    decode_component_event,
    decode_custom_id,
    encode_custom_id,
    extract_command_path_and_options,
    extract_user_id,
)


def _command_payload(**overrides):
    payload = {
        "id": "inter-1",
        "token": "token-1",
        "type": 2,
        "channel_id": "channel-1",
        "member": {"user": {"id": "user-1"}},
        "data": {
            "name": "request",
            "options": [
                {
                    "type": 1,
                    "name": "Movie",
                    "options": [{"type": 3, "name": "query", "value": "Dune"}],
                }
            ],
        },
    }
    payload.update(overrides)
    return payload


def _component_payload(custom_id: str, values=None):
    data = {"custom_id": custom_id, "component_type": 3}
    if values is not None:
        data["values"] = values
    return {
        "id": "inter-2",
        "token": "token-2",
        "type": 3,
        "channel_id": "channel-1",
        "user": {"id": "user-1"},
        "data": data,
    }


def test_encode_and_decode_custom_id() -> None:
    custom_id = encode_custom_id("inter-1", "option", "monitor_type")

    assert custom_id == "req:inter-1:option:monitor_type"
    assert decode_custom_id(custom_id) == CustomId(
        correlation_id="inter-1", action="option", argument="monitor_type"
    )
    assert decode_custom_id("req:inter-1:cancel") == CustomId(
        correlation_id="inter-1", action="cancel"
    )


@pytest.mark.parametrize(
    "custom_id",
    [None, "", "req", "bind:inter-1:select", "req::select", "req:inter-1:explode"],
)
def test_decode_custom_id_rejects_foreign_ids(custom_id) -> None:
    assert decode_custom_id(custom_id) is None


def test_encode_custom_id_enforces_discord_limit() -> None:
    with pytest.raises(ValueError, match="too long"):
        encode_custom_id("x" * 100, "select")


def test_extract_command_path_and_options() -> None:
    path, options = extract_command_path_and_options(_command_payload())

    assert path == ("request", "Movie")
    assert options == {"query": "Dune"}


def test_decode_command_event() -> None:
    event = decode_command_event(_command_payload())

    assert event is not None
    assert event.correlation_id == "inter-1"
    assert event.interaction_token == "token-1"
    assert event.user_id == "user-1"
    assert event.media_name == "movie"
    assert event.query == "Dune"
    assert event.channel_id == "channel-1"


@pytest.mark.parametrize(
    "overrides",
    [
        {"type": 3},
        {"token": None},
        {"member": None},
        {"data": {"name": "status", "options": []}},
        {"data": {"name": "request", "options": []}},
    ],
)
def test_decode_command_event_ignores_other_payloads(overrides) -> None:
    assert decode_command_event(_command_payload(**overrides)) is None


def test_decode_command_event_without_query_uses_empty_text() -> None:
    payload = _command_payload(
        data={"name": "request", "options": [{"type": 1, "name": "movie"}]}
    )

    event = decode_command_event(payload)

    assert event is not None
    assert event.query == ""


def test_decode_component_event_for_select() -> None:
    event = decode_component_event(
        _component_payload("req:inter-1:select", values=["2"])
    )

    assert event is not None
    assert event.correlation_id == "inter-1"
    assert event.action == "select"
    assert event.argument is None
    assert event.values == ("2",)
    assert event.user_id == "user-1"
    assert event.interaction_id == "inter-2"


def test_decode_component_event_for_page_button() -> None:
    event = decode_component_event(_component_payload("req:inter-1:page:25"))

    assert event is not None
    assert event.action == "page"
    assert event.argument == "25"
    assert event.values == ()


def test_decode_component_event_ignores_unknown_custom_id() -> None:
    assert decode_component_event(_component_payload("flow:abc:resume")) is None
    assert decode_component_event(_command_payload()) is None


def test_extract_user_id_prefers_guild_member() -> None:
    payload = {"member": {"user": {"id": 42}}, "user": {"id": "dm-user"}}

    assert extract_user_id(payload) == "42"
    assert extract_user_id({"user": {"id": "dm-user"}}) == "dm-user"
    assert extract_user_id({}) is None
