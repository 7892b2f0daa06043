from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from ..core.config import BackendSettings
from ..core.exceptions import ConfigError
from ..core.logging_utils import log_event
from .errors import UnknownBackend
from .models import BackendFamily, SettingKind
from .radarr import RadarrAdapter
from .sonarr import SonarrAdapter

BackendAdapter = Union[RadarrAdapter, SonarrAdapter]

_ADAPTER_TYPES: dict[BackendFamily, type[BackendAdapter]] = {
    BackendFamily.RADARR: RadarrAdapter,
    BackendFamily.SONARR: SonarrAdapter,
}


@dataclass(frozen=True)
class BackendConnection:
    url: str
    api_key: str = field(repr=False)


@dataclass(frozen=True)
class BackendConfig:
    media_name: str
    family: BackendFamily
    connection: BackendConnection
    adapter: BackendAdapter = field(compare=False, repr=False)
    overrides: Mapping[SettingKind, str] = field(default_factory=dict)
    allowed_choices: Mapping[SettingKind, tuple[str, ...]] = field(
        default_factory=dict
    )

    @property
    def unresolved_settings(self) -> tuple[SettingKind, ...]:
        return tuple(
            setting
            for setting in self.adapter.settings
            if setting not in self.overrides
        )


class BackendRegistry:
    def __init__(self, entries: Iterable[BackendConfig]) -> None:
        by_name: dict[str, BackendConfig] = {}
        for entry in entries:
            if entry.media_name in by_name:
                raise ConfigError(
                    f"duplicate backend media name {entry.media_name!r}"
                )
            by_name[entry.media_name] = entry
        self._entries = MappingProxyType(by_name)

    @property
    def media_names(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, media_name: str) -> BackendConfig:
        try:
            return self._entries[media_name]
        except KeyError:
            raise UnknownBackend(media_name) from None

    async def close(self) -> None:
        for entry in self._entries.values():
            with contextlib.suppress(Exception):
                await entry.adapter.close()


def _validate_settings(
    settings: BackendSettings,
) -> tuple[
    BackendFamily, dict[SettingKind, str], dict[SettingKind, tuple[str, ...]]
]:
    where = f"backend {settings.media_name!r}"
    try:
        family = BackendFamily(settings.family)
    except ValueError:
        raise ConfigError(f"{where} has unknown family {settings.family!r}") from None
    adapter_type = _ADAPTER_TYPES[family]
    try:
        overrides = {
            SettingKind(name): adapter_type.validate_override(SettingKind(name), value)
            for name, value in settings.overrides.items()
        }
        allowed_choices = {
            SettingKind(name): tuple(
                adapter_type.validate_override(SettingKind(name), value)
                for value in values
            )
            for name, values in settings.allowed_choices.items()
        }
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc
    return family, overrides, allowed_choices


def build_registry(
    backends: Iterable[BackendSettings], *, logger: Optional[logging.Logger] = None
) -> BackendRegistry:
    """Build the registry once at startup.

    Every entry is validated before any adapter (and its HTTP client) is
    created, so a bad config fails without leaking connections. Raises
    ConfigError on duplicate media names, settings the family does not have
    and malformed enum values.
    """
    logger = logger or logging.getLogger(__name__)
    validated = []
    seen: set[str] = set()
    for settings in backends:
        if settings.media_name in seen:
            raise ConfigError(f"duplicate backend media name {settings.media_name!r}")
        seen.add(settings.media_name)
        validated.append((settings, *_validate_settings(settings)))

    entries: list[BackendConfig] = []
    for settings, family, overrides, allowed_choices in validated:
        adapter = _ADAPTER_TYPES[family](
            name=settings.media_name,
            base_url=settings.url,
            api_key=settings.api_key,
            timeout_seconds=settings.timeout_seconds,
            connect_timeout_seconds=settings.connect_timeout_seconds,
            logger=logger,
        )
        entry = BackendConfig(
            media_name=settings.media_name,
            family=family,
            connection=BackendConnection(url=settings.url, api_key=settings.api_key),
            adapter=adapter,
            overrides=MappingProxyType(overrides),
            allowed_choices=MappingProxyType(allowed_choices),
        )
        entries.append(entry)
        log_event(
            logger,
            logging.INFO,
            "backend.registry.entry",
            media_name=entry.media_name,
            family=family.value,
            overrides=sorted(setting.value for setting in overrides),
            runtime_settings=[setting.value for setting in entry.unresolved_settings],
        )
    return BackendRegistry(entries)
