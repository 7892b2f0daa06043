from __future__ import annotations

import logging
from typing import Any, ClassVar, Mapping, Optional, Sequence

from ..core.logging_utils import log_event
from .errors import BackendRejected
from .http import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    ArrHttpClient,
)
from .models import (
    MAX_CANDIDATES,
    BackendFamily,
    MediaCandidate,
    OptionValue,
    SettingKind,
    SubmitOutcome,
)

QUALITY_PROFILE_PATH = "/api/v3/qualityprofile"
ROOT_FOLDER_PATH = "/api/v3/rootfolder"

_ALREADY_ADDED_MARKERS = ("already been added", "already exists")
_BOOLEAN_KEYS = {"true": True, "false": False}


def _as_positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def _format_free_space(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return None
    size = float(value)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024 or unit == "TB":
            return f"{size:.1f} {unit} free"
        size /= 1024
    return None


def is_already_added(exc: BackendRejected) -> bool:
    if exc.status_code not in {400, 409}:
        return False
    reason = exc.reason.lower()
    return any(marker in reason for marker in _ALREADY_ADDED_MARKERS)


class ArrAdapter:
    """Behaviour shared by the Radarr and Sonarr adapters.

    Subclasses describe their family through the class attributes and
    provide ``_parse_candidate`` and ``_build_add_payload``.
    """

    family: ClassVar[BackendFamily]
    settings: ClassVar[tuple[SettingKind, ...]]
    static_values: ClassVar[Mapping[SettingKind, Mapping[str, str]]]
    defaults: ClassVar[Mapping[SettingKind, str]]
    # Whether a title already in the library ends the request at selection.
    stops_early: ClassVar[bool]
    lookup_path: ClassVar[str]
    add_path: ClassVar[str]

    def __init__(
        self,
        *,
        name: str,
        base_url: str,
        api_key: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        http_client: Optional[ArrHttpClient] = None,
    ) -> None:
        self.name = name
        self._logger = logger or logging.getLogger(__name__)
        self._http = (
            http_client
            if http_client is not None
            else ArrHttpClient(
                base_url=base_url,
                api_key=api_key,
                timeout_seconds=timeout_seconds,
                connect_timeout_seconds=connect_timeout_seconds,
                logger=self._logger,
            )
        )

    async def close(self) -> None:
        await self._http.close()

    @classmethod
    def validate_override(cls, setting: SettingKind, value: str) -> str:
        """Return the canonical form of a configured value or raise ValueError."""
        if setting not in cls.settings:
            raise ValueError(f"{setting.value} is not a {cls.family.value} setting")
        text = str(value).strip()
        if not text:
            raise ValueError(f"{setting.value} must be a non-empty string")
        if setting is SettingKind.SEASON_FOLDER:
            lowered = text.lower()
            if lowered not in _BOOLEAN_KEYS:
                raise ValueError(f"{setting.value} must be true or false")
            return lowered
        allowed = cls.static_values.get(setting)
        if allowed is None:
            return text
        for key in allowed:
            if key.lower() == text.lower():
                return key
        raise ValueError(
            f"invalid {setting.value} {text!r}; expected one of {list(allowed)}"
        )

    def default_value(
        self, setting: SettingKind, options: Sequence[OptionValue]
    ) -> Optional[OptionValue]:
        preferred = self.defaults.get(setting)
        for option in options:
            if option.key == preferred:
                return option
        return options[0] if options else None

    async def search(self, query: str) -> list[MediaCandidate]:
        term = query.strip()
        if not term:
            return []
        payload = await self._http.request(
            "GET", self.lookup_path, params={"term": term}
        )
        if not isinstance(payload, list):
            raise BackendRejected("Unexpected search response from the backend.")
        candidates: list[MediaCandidate] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            candidate = self._parse_candidate(item)
            if candidate is not None:
                candidates.append(candidate)
        log_event(
            self._logger,
            logging.INFO,
            "backend.search.completed",
            backend=self.name,
            family=self.family.value,
            result_count=len(candidates),
        )
        return candidates[:MAX_CANDIDATES]

    async def list_option_values(self, setting: SettingKind) -> list[OptionValue]:
        if setting not in self.settings:
            raise ValueError(f"{setting.value} is not a {self.family.value} setting")
        if setting is SettingKind.QUALITY_PROFILE:
            return await self._quality_profiles()
        if setting is SettingKind.ROOT_FOLDER:
            return await self._root_folders()
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
        resolved: Mapping[SettingKind, str],
        *,
        quality_profile_id: Optional[int] = None,
    ) -> SubmitOutcome:
        """Add ``candidate`` to the library.

        ``quality_profile_id`` skips the profile lookup when the caller
        already listed the profiles.
        """
        missing = [
            setting.value for setting in self.settings if setting not in resolved
        ]
        if missing:
            raise ValueError(f"unresolved settings: {', '.join(missing)}")

        profile_id = quality_profile_id
        if profile_id is None:
            profile_id = await self._resolve_quality_profile(
                resolved[SettingKind.QUALITY_PROFILE]
            )
        payload = self._build_add_payload(candidate, resolved, profile_id)
        try:
            await self._http.request("POST", self.add_path, payload=payload)
        except BackendRejected as exc:
            if is_already_added(exc):
                log_event(
                    self._logger,
                    logging.INFO,
                    "backend.submit.already_added",
                    backend=self.name,
                    title=candidate.display_title,
                )
                return SubmitOutcome.ALREADY_REQUESTED
            raise
        log_event(
            self._logger,
            logging.INFO,
            "backend.submit.added",
            backend=self.name,
            title=candidate.display_title,
            identifier=candidate.identifier,
        )
        return SubmitOutcome.ADDED

    async def _quality_profiles(self) -> list[OptionValue]:
        payload = await self._http.request("GET", QUALITY_PROFILE_PATH)
        options: list[OptionValue] = []
        for item in payload if isinstance(payload, list) else []:
            if not isinstance(item, dict):
                continue
            name = item.get("name")
            profile_id = item.get("id")
            if isinstance(name, str) and name and isinstance(profile_id, int):
                options.append(OptionValue(key=name, label=name, value=profile_id))
        return options

    async def _root_folders(self) -> list[OptionValue]:
        payload = await self._http.request("GET", ROOT_FOLDER_PATH)
        options: list[OptionValue] = []
        for item in payload if isinstance(payload, list) else []:
            if not isinstance(item, dict):
                continue
            path = item.get("path")
            if not isinstance(path, str) or not path:
                continue
            if item.get("accessible") is False:
                continue
            options.append(
                OptionValue(
                    key=path,
                    label=path,
                    value=path,
                    description=_format_free_space(item.get("freeSpace")),
                )
            )
        return options

    async def _resolve_quality_profile(self, name: str) -> int:
        profiles = await self._quality_profiles()
        for profile in profiles:
            if profile.key.lower() == name.lower():
                return int(profile.value)
        available = [profile.key for profile in profiles]
        raise BackendRejected(
            f"Quality profile '{name}' not found. Available options: {available}"
        )

    def _parse_candidate(self, item: Mapping[str, Any]) -> Optional[MediaCandidate]:
        raise NotImplementedError

    def _build_add_payload(
        self,
        candidate: MediaCandidate,
        resolved: Mapping[SettingKind, str],
        quality_profile_id: int,
    ) -> dict[str, Any]:
        raise NotImplementedError


def candidate_from_lookup(
    item: Mapping[str, Any], *, identifier_key: str
) -> Optional[MediaCandidate]:
    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    overview = item.get("overview")
    return MediaCandidate(
        title=title.strip(),
        year=_as_positive_int(item.get("year")),
        identifier=_as_positive_int(item.get(identifier_key)),
        reference=dict(item),
        overview=overview.strip() if isinstance(overview, str) else "",
        tracked_id=_as_positive_int(item.get("id")),
    )
