from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

# Discord select menus accept at most 25 options.
MAX_CANDIDATES = 25


class BackendFamily(str, Enum):
    RADARR = "radarr"
    SONARR = "sonarr"

    @property
    def noun(self) -> str:
        return "movie" if self is BackendFamily.RADARR else "series"


class SettingKind(str, Enum):
    ROOT_FOLDER = "root_folder"
    MONITOR_TYPE = "monitor_type"
    MINIMUM_AVAILABILITY = "minimum_availability"
    SERIES_TYPE = "series_type"
    QUALITY_PROFILE = "quality_profile"
    SEASON_FOLDER = "season_folder"

    @property
    def label(self) -> str:
        return _SETTING_LABELS[self]


_SETTING_LABELS = {
    SettingKind.ROOT_FOLDER: "Root folder",
    SettingKind.MONITOR_TYPE: "Monitor",
    SettingKind.MINIMUM_AVAILABILITY: "Minimum availability",
    SettingKind.SERIES_TYPE: "Series type",
    SettingKind.QUALITY_PROFILE: "Quality profile",
    SettingKind.SEASON_FOLDER: "Season folders",
}


class SubmitOutcome(str, Enum):
    ADDED = "added"
    ALREADY_REQUESTED = "already_requested"


@dataclass(frozen=True)
class MediaCandidate:
    """One lookup result.

    ``reference`` is the backend's raw lookup resource; submit sends it back
    with the resolved settings merged in. ``tracked_id`` is set when the
    backend already manages this title.
    """

    title: str
    year: Optional[int]
    identifier: Optional[int]
    reference: Mapping[str, Any] = field(compare=False, hash=False, repr=False)
    overview: str = ""
    tracked_id: Optional[int] = None

    @property
    def already_tracked(self) -> bool:
        return self.tracked_id is not None

    @property
    def display_title(self) -> str:
        if self.year:
            return f"{self.title} ({self.year})"
        return self.title


@dataclass(frozen=True)
class OptionValue:
    key: str
    label: str
    value: Any
    description: Optional[str] = None
