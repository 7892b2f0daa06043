from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from requestarr.backends.errors import BackendRejected, BackendUnreachable
from requestarr.backends.http import ArrHttpClient
from requestarr.backends.models import SettingKind, SubmitOutcome
from requestarr.backends.sonarr import SonarrAdapter

SEVERANCE = {
    "title": "Severance",
    "year": 2022,
    "tvdbId": 371980,
    "seasons": [{"seasonNumber": 1, "monitored": False}],
}


def _adapter(handler) -> SonarrAdapter:
    return SonarrAdapter(
        name="series",
        base_url="http://sonarr.local",
        api_key="key",
        http_client=ArrHttpClient(
            base_url="http://sonarr.local",
            api_key="key",
            transport=httpx.MockTransport(handler),
        ),
    )


def _routes(added: list[dict[str, Any]], *, add_status: int = 201):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v3/series/lookup":
            return httpx.Response(200, json=[SEVERANCE])
        if path == "/api/v3/qualityprofile":
            return httpx.Response(200, json=[{"id": 9, "name": "Any"}])
        if path == "/api/v3/series" and request.method == "POST":
            if add_status >= 300:
                return httpx.Response(
                    add_status, json={"message": "Series already exists"}
                )
            added.append(json.loads(request.content))
            return httpx.Response(201, json={"id": 1})
        return httpx.Response(404)

    return handler


RESOLVED = {
    SettingKind.ROOT_FOLDER: "/tv",
    SettingKind.MONITOR_TYPE: "firstSeason",
    SettingKind.SERIES_TYPE: "anime",
    SettingKind.QUALITY_PROFILE: "Any",
    SettingKind.SEASON_FOLDER: "false",
}


@pytest.mark.anyio
async def test_search_uses_tvdb_identifier() -> None:
    adapter = _adapter(_routes([]))

    [candidate] = await adapter.search("severance")

    assert candidate.identifier == 371980
    assert candidate.display_title == "Severance (2022)"


@pytest.mark.anyio
async def test_submit_builds_series_payload() -> None:
    added: list[dict[str, Any]] = []
    adapter = _adapter(_routes(added))
    [candidate] = await adapter.search("severance")

    outcome = await adapter.submit(candidate, RESOLVED)

    assert outcome is SubmitOutcome.ADDED
    [body] = added
    assert body["tvdbId"] == 371980
    assert body["qualityProfileId"] == 9
    assert body["rootFolderPath"] == "/tv"
    assert body["seriesType"] == "anime"
    assert body["seasonFolder"] is False
    assert body["monitored"] is True
    assert body["addOptions"]["monitor"] == "firstSeason"
    assert body["addOptions"]["searchForMissingEpisodes"] is True
    assert body["seasons"] == SEVERANCE["seasons"]


@pytest.mark.anyio
async def test_existing_series_is_already_requested() -> None:
    adapter = _adapter(_routes([], add_status=409))
    [candidate] = await adapter.search("severance")

    outcome = await adapter.submit(candidate, RESOLVED)

    assert outcome is SubmitOutcome.ALREADY_REQUESTED


@pytest.mark.anyio
async def test_other_client_errors_propagate() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v3/series":
            return httpx.Response(400, json={"message": "Root folder missing"})
        return _routes([])(request)

    adapter = _adapter(handler)
    [candidate] = await adapter.search("severance")

    with pytest.raises(BackendRejected) as excinfo:
        await adapter.submit(candidate, RESOLVED)

    assert excinfo.value.reason == "Root folder missing"
    assert excinfo.value.status_code == 400


@pytest.mark.anyio
async def test_server_error_during_submit_is_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v3/series":
            return httpx.Response(502)
        return _routes([])(request)

    adapter = _adapter(handler)
    [candidate] = await adapter.search("severance")

    with pytest.raises(BackendUnreachable):
        await adapter.submit(candidate, RESOLVED)


@pytest.mark.anyio
async def test_season_folder_and_monitor_options() -> None:
    adapter = _adapter(_routes([]))

    folders = await adapter.list_option_values(SettingKind.SEASON_FOLDER)
    monitors = await adapter.list_option_values(SettingKind.MONITOR_TYPE)

    assert [(option.key, option.label) for option in folders] == [
        ("true", "Yes"),
        ("false", "No"),
    ]
    assert "pilot" in {option.key for option in monitors}


@pytest.mark.parametrize(
    "value, expected",
    [("TRUE", "true"), ("false", "false")],
)
def test_season_folder_override_is_boolean(value: str, expected: str) -> None:
    assert (
        SonarrAdapter.validate_override(SettingKind.SEASON_FOLDER, value) == expected
    )


def test_season_folder_override_rejects_other_text() -> None:
    with pytest.raises(ValueError, match="true or false"):
        SonarrAdapter.validate_override(SettingKind.SEASON_FOLDER, "maybe")


def test_minimum_availability_is_not_a_series_setting() -> None:
    with pytest.raises(ValueError, match="not a sonarr setting"):
        SonarrAdapter.validate_override(SettingKind.MINIMUM_AVAILABILITY, "released")


@pytest.mark.anyio
async def test_tracked_series_is_still_posted() -> None:
    added: list[dict[str, Any]] = []
    routes = _routes(added)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v3/series/lookup":
            return httpx.Response(200, json=[dict(SEVERANCE, id=7)])
        return routes(request)

    adapter = _adapter(handler)
    [candidate] = await adapter.search("severance")

    outcome = await adapter.submit(candidate, RESOLVED)

    assert candidate.already_tracked
    assert not SonarrAdapter.stops_early
    assert outcome is SubmitOutcome.ADDED
    assert added[0]["id"] == 7


@pytest.mark.anyio
async def test_unmonitored_series_still_searches_missing_episodes() -> None:
    added: list[dict[str, Any]] = []
    adapter = _adapter(_routes(added))
    [candidate] = await adapter.search("severance")

    await adapter.submit(candidate, {**RESOLVED, SettingKind.MONITOR_TYPE: "none"})

    [body] = added
    assert body["monitored"] is False
    assert body["addOptions"]["searchForMissingEpisodes"] is True
    assert body["addOptions"]["searchForCutoffUnmetEpisodes"] is False
