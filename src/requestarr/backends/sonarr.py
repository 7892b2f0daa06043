from __future__ import annotations

from typing import Any, Mapping, Optional

from .base import ArrAdapter, candidate_from_lookup
from .models import BackendFamily, MediaCandidate, SettingKind

SONARR_MONITOR_TYPES = {
    "all": "All episodes",
    "future": "Future episodes",
    "missing": "Missing episodes",
    "existing": "Existing episodes",
    "firstSeason": "First season",
    "lastSeason": "Last season",
    "latestSeason": "Latest season",
    "pilot": "Pilot episode",
    "recent": "Recent episodes",
    "monitorSpecials": "Monitor specials",
    "unmonitorSpecials": "Unmonitor specials",
    "none": "None",
}
SONARR_SERIES_TYPES = {
    "standard": "Standard",
    "daily": "Daily",
    "anime": "Anime",
}


class SonarrAdapter(ArrAdapter):
    family = BackendFamily.SONARR
    settings = (
        SettingKind.ROOT_FOLDER,
        SettingKind.MONITOR_TYPE,
        SettingKind.SERIES_TYPE,
        SettingKind.QUALITY_PROFILE,
        SettingKind.SEASON_FOLDER,
    )
    static_values = {
        SettingKind.MONITOR_TYPE: SONARR_MONITOR_TYPES,
        SettingKind.SERIES_TYPE: SONARR_SERIES_TYPES,
    }
    defaults = {
        SettingKind.MONITOR_TYPE: "all",
        SettingKind.SERIES_TYPE: "standard",
        SettingKind.SEASON_FOLDER: "true",
    }
    # Tracked series can still gain seasons or change monitoring.
    stops_early = False
    lookup_path = "/api/v3/series/lookup"
    add_path = "/api/v3/series"

    def _parse_candidate(self, item: Mapping[str, Any]) -> Optional[MediaCandidate]:
        return candidate_from_lookup(item, identifier_key="tvdbId")

    def _build_add_payload(
        self,
        candidate: MediaCandidate,
        resolved: Mapping[SettingKind, str],
        quality_profile_id: int,
    ) -> dict[str, Any]:
        monitor = resolved[SettingKind.MONITOR_TYPE]
        payload = dict(candidate.reference)
        payload.update(
            {
                "qualityProfileId": quality_profile_id,
                "rootFolderPath": resolved[SettingKind.ROOT_FOLDER],
                "seriesType": resolved[SettingKind.SERIES_TYPE],
                "seasonFolder": resolved[SettingKind.SEASON_FOLDER] == "true",
                "monitored": monitor != "none",
                "addOptions": {
                    "monitor": monitor,
                    "searchForMissingEpisodes": True,
                    "searchForCutoffUnmetEpisodes": False,
                },
            }
        )
        return payload
