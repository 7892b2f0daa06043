from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from requestarr.backends.http import ArrHttpClient
from requestarr.backends.models import BackendFamily, SettingKind
from requestarr.backends.sonarr import SonarrAdapter
from requestarr.workflow.render import ACTION_CONFIRM, ACTION_OPTION, ACTION_SELECT
from requestarr.workflow.session import Stage

SONARR_OVERRIDES = {
    SettingKind.ROOT_FOLDER: "/tv",
    SettingKind.MONITOR_TYPE: "all",
    SettingKind.SERIES_TYPE: "standard",
    SettingKind.QUALITY_PROFILE: "Any",
    SettingKind.SEASON_FOLDER: "true",
}


class _FakeSonarr:
    def __init__(self, lookup: list[dict[str, Any]]) -> None:
        self.lookup = lookup
        self.added: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v3/series/lookup":
            return httpx.Response(200, json=self.lookup)
        if path == "/api/v3/qualityprofile":
            return httpx.Response(200, json=[{"id": 9, "name": "Any"}])
        if path == "/api/v3/series" and request.method == "POST":
            self.added.append(json.loads(request.content))
            return httpx.Response(201, json={"id": 7})
        return httpx.Response(404)


def _sonarr(server: _FakeSonarr) -> SonarrAdapter:
    return SonarrAdapter(
        name="series",
        base_url="http://sonarr.local",
        api_key="key",
        http_client=ArrHttpClient(
            base_url="http://sonarr.local",
            api_key="key",
            transport=httpx.MockTransport(server),
        ),
    )


@pytest.mark.anyio
async def test_series_in_library_goes_on_to_submission(
    harness_factory, entry_factory
) -> None:
    server = _FakeSonarr(
        [{"id": 7, "title": "Severance", "year": 2022, "tvdbId": 371980}]
    )
    adapter = _sonarr(server)
    harness = harness_factory(
        entry_factory("series", adapter, overrides=dict(SONARR_OVERRIDES))
    )
    command = harness.command("series", "Severance")

    try:
        directive = await harness.dispatcher.on_command(command)

        assert directive.stage is Stage.CONFIRMING_SUBMISSION
        assert "**Severance (2022)**" in directive.content

        directive = await harness.dispatcher.on_component(
            harness.component(command.correlation_id, ACTION_CONFIRM)
        )
    finally:
        await adapter.close()

    assert directive.stage is Stage.COMPLETED
    assert directive.content == "**Severance (2022)** has been requested."
    [body] = server.added
    assert body["id"] == 7
    assert body["qualityProfileId"] == 9


@pytest.mark.anyio
async def test_tracked_series_is_not_cut_short(
    harness_factory, entry_factory, adapter_factory, candidate_factory
) -> None:
    adapter = adapter_factory(
        BackendFamily.SONARR,
        candidates=[
            candidate_factory("Severance", 2022, 371980, tracked_id=7),
            candidate_factory("Severance Pay", 2019, 1234),
        ],
    )
    harness = harness_factory(
        entry_factory(
            "series",
            adapter,
            overrides={
                SettingKind.ROOT_FOLDER: "/media/a",
                SettingKind.MONITOR_TYPE: "all",
                SettingKind.SERIES_TYPE: "standard",
                SettingKind.QUALITY_PROFILE: "HD-1080p",
                SettingKind.SEASON_FOLDER: "true",
            },
        )
    )
    command = harness.command("series", "Severance")

    await harness.dispatcher.on_command(command)
    directive = await harness.dispatcher.on_component(
        harness.component(command.correlation_id, ACTION_SELECT, values=("0",))
    )

    assert directive.stage is Stage.CONFIRMING_SUBMISSION
    directive = await harness.dispatcher.on_component(
        harness.component(command.correlation_id, ACTION_CONFIRM)
    )
    assert directive.stage is Stage.COMPLETED
    [(candidate, _)] = adapter.submitted
    assert candidate.tracked_id == 7


@pytest.mark.anyio
async def test_series_type_and_season_folder_are_prompted(
    harness_factory, entry_factory, adapter_factory, candidate_factory
) -> None:
    adapter = adapter_factory(
        BackendFamily.SONARR,
        candidates=[candidate_factory("Frieren", 2023, 424536)],
    )
    harness = harness_factory(
        entry_factory(
            "series",
            adapter,
            overrides={
                SettingKind.ROOT_FOLDER: "/media/a",
                SettingKind.MONITOR_TYPE: "all",
                SettingKind.QUALITY_PROFILE: "HD-1080p",
            },
        )
    )
    command = harness.command("series", "Frieren")

    directive = await harness.dispatcher.on_command(command)

    assert directive.stage is Stage.CONFIGURING_SETTINGS
    select = directive.components[0]
    assert select.argument == SettingKind.SERIES_TYPE.value
    assert [choice.label for choice in select.choices] == [
        "Standard",
        "Daily",
        "Anime",
    ]

    directive = await harness.dispatcher.on_component(
        harness.component(
            command.correlation_id,
            ACTION_OPTION,
            argument=SettingKind.SERIES_TYPE.value,
            values=("2",),
        )
    )

    assert directive.stage is Stage.CONFIGURING_SETTINGS
    select = directive.components[0]
    assert select.argument == SettingKind.SEASON_FOLDER.value
    assert [choice.label for choice in select.choices] == ["Yes", "No"]
    assert "Series type: Anime" in directive.content

    directive = await harness.dispatcher.on_component(
        harness.component(
            command.correlation_id,
            ACTION_OPTION,
            argument=SettingKind.SEASON_FOLDER.value,
            values=("1",),
        )
    )

    assert directive.stage is Stage.CONFIRMING_SUBMISSION
    assert "Series type: Anime" in directive.content
    assert "Season folders: No" in directive.content

    await harness.dispatcher.on_component(
        harness.component(command.correlation_id, ACTION_CONFIRM)
    )
    _, resolved = adapter.submitted[0]
    assert resolved[SettingKind.SERIES_TYPE] == "anime"
    assert resolved[SettingKind.SEASON_FOLDER] == "false"
    assert adapter.count("options") == 2
