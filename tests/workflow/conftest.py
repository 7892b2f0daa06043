from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import pytest

from requestarr.backends.models import (
    BackendFamily,
    MediaCandidate,
    OptionValue,
    SettingKind,
    SubmitOutcome,
)
from requestarr.backends.radarr import RadarrAdapter
from requestarr.backends.registry import (
    BackendConfig,
    BackendConnection,
    BackendRegistry,
)
from requestarr.backends.sonarr import SonarrAdapter
from requestarr.workflow.dispatcher import CommandDispatcher
from requestarr.workflow.machine import RequestWorkflow
from requestarr.workflow.render import CommandEvent, ComponentEvent
from requestarr.workflow.store import SessionStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter:
    """In-memory stand-in for a Radarr/Sonarr adapter.

    ``errors`` maps an operation name (search, options, submit) to exceptions
    raised, in order, by the next calls. When ``gate`` is set, every backend
    call waits on it, which lets tests observe the session mid-call.
    """

    def __init__(
        self,
        family: BackendFamily = BackendFamily.RADARR,
        *,
        candidates: Optional[list[MediaCandidate]] = None,
        options: Optional[dict[SettingKind, list[OptionValue]]] = None,
        submit_outcome: SubmitOutcome = SubmitOutcome.ADDED,
    ) -> None:
        base = RadarrAdapter if family is BackendFamily.RADARR else SonarrAdapter
        self._base = base
        self.family = family
        self.settings = base.settings
        self.static_values = base.static_values
        self.defaults = base.defaults
        self.stops_early = base.stops_early
        self.candidates = list(candidates or [])
        self.options: dict[SettingKind, list[OptionValue]] = {
            SettingKind.QUALITY_PROFILE: [
                OptionValue(key="HD-1080p", label="HD-1080p", value=4),
                OptionValue(key="Ultra-HD", label="Ultra-HD", value=5),
            ],
            SettingKind.ROOT_FOLDER: [
                OptionValue(key="/media/a", label="/media/a", value="/media/a"),
                OptionValue(key="/media/b", label="/media/b", value="/media/b"),
            ],
        }
        self.options.update(options or {})
        self.submit_outcome = submit_outcome
        self.errors: dict[str, list[BaseException]] = {}
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[tuple[str, Any]] = []
        self.submitted: list[tuple[MediaCandidate, dict[SettingKind, str]]] = []
        self.profile_ids: list[Optional[int]] = []
        self.closed = False

    def default_value(
        self, setting: SettingKind, options: list[OptionValue]
    ) -> Optional[OptionValue]:
        return self._base.default_value(self, setting, options)

    async def _enter(self, operation: str, argument: Any) -> None:
        self.calls.append((operation, argument))
        if self.gate is not None:
            await self.gate.wait()
        pending = self.errors.get(operation)
        if pending:
            raise pending.pop(0)

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def search(self, query: str) -> list[MediaCandidate]:
        await self._enter("search", query)
        return list(self.candidates)

    async def list_option_values(self, setting: SettingKind) -> list[OptionValue]:
        await self._enter("options", setting)
        if setting in self.options:
            return list(self.options[setting])
        if setting is SettingKind.SEASON_FOLDER:
            return [
                OptionValue(key="true", label="Yes", value=True),
                OptionValue(key="false", label="No", value=False),
            ]
        return [
            OptionValue(key=key, label=label, value=key)
            for key, label in self.static_values[setting].items()
        ]

    async def submit(
        self,
        candidate: MediaCandidate,
        resolved: dict[SettingKind, str],
        *,
        quality_profile_id: Optional[int] = None,
    ) -> SubmitOutcome:
        await self._enter("submit", candidate)
        self.submitted.append((candidate, dict(resolved)))
        self.profile_ids.append(quality_profile_id)
        return self.submit_outcome

    async def close(self) -> None:
        self.closed = True


def make_candidate(
    title: str,
    year: int,
    identifier: int,
    *,
    tracked_id: Optional[int] = None,
) -> MediaCandidate:
    return MediaCandidate(
        title=title,
        year=year,
        identifier=identifier,
        reference={"title": title, "year": year, "tmdbId": identifier},
        overview=f"{title} overview",
        tracked_id=tracked_id,
    )


def make_entry(
    media_name: str,
    adapter: FakeAdapter,
    *,
    overrides: Optional[dict[SettingKind, str]] = None,
    allowed_choices: Optional[dict[SettingKind, tuple[str, ...]]] = None,
) -> BackendConfig:
    return BackendConfig(
        media_name=media_name,
        family=adapter.family,
        connection=BackendConnection(url="http://arr.local", api_key="secret"),
        adapter=adapter,  # type: ignore[arg-type]
        overrides=overrides or {},
        allowed_choices=allowed_choices or {},
    )


RADARR_OVERRIDES = {
    SettingKind.ROOT_FOLDER: "/media/a",
    SettingKind.MONITOR_TYPE: "movieOnly",
    SettingKind.MINIMUM_AVAILABILITY: "released",
    SettingKind.QUALITY_PROFILE: "HD-1080p",
}


class Harness:
    """Store, registry and dispatcher wired together for one test."""

    def __init__(self, *entries: BackendConfig, timeout_seconds: float = 300) -> None:
        self.clock = FakeClock()
        self.logger = logging.getLogger("requestarr.tests")
        self.store = SessionStore(
            timeout_seconds=timeout_seconds, clock=self.clock, logger=self.logger
        )
        self.registry = BackendRegistry(entries)
        self.dispatcher = CommandDispatcher(
            self.store,
            self.registry,
            retry_wait_seconds=0,
            logger=self.logger,
        )
        self._counter = 0

    @property
    def workflow(self) -> RequestWorkflow:
        return self.dispatcher.workflow

    def _next_id(self) -> str:
        self._counter += 1
        return f"{self._counter:04d}"

    def command(
        self, media_name: str, query: str, *, user_id: str = "user-1"
    ) -> CommandEvent:
        interaction_id = f"cmd-{self._next_id()}"
        return CommandEvent(
            interaction_id=interaction_id,
            interaction_token=f"token-{interaction_id}",
            user_id=user_id,
            media_name=media_name,
            query=query,
            channel_id="channel-1",
        )

    def component(
        self,
        correlation_id: str,
        action: str,
        *,
        argument: Optional[str] = None,
        values: tuple[str, ...] = (),
        user_id: str = "user-1",
    ) -> ComponentEvent:
        interaction_id = f"comp-{self._next_id()}"
        return ComponentEvent(
            interaction_id=interaction_id,
            interaction_token=f"token-{interaction_id}",
            user_id=user_id,
            correlation_id=correlation_id,
            action=action,
            argument=argument,
            values=values,
            channel_id="channel-1",
        )


@pytest.fixture
def harness_factory() -> Callable[..., Harness]:
    return Harness


@pytest.fixture
def adapter_factory() -> Callable[..., FakeAdapter]:
    return FakeAdapter


@pytest.fixture
def entry_factory() -> Callable[..., BackendConfig]:
    return make_entry


@pytest.fixture
def candidate_factory() -> Callable[..., MediaCandidate]:
    return make_candidate


@pytest.fixture
def radarr_overrides() -> dict[SettingKind, str]:
    return dict(RADARR_OVERRIDES)
