from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.logging_utils import log_event
from .base import ArrAdapter, candidate_from_lookup
from .models import BackendFamily, MediaCandidate, SettingKind, SubmitOutcome

RADARR_MONITOR_TYPES = {
    "movieOnly": "Movie only",
    "movieAndCollection": "Movie and collection",
    "none": "None",
}
RADARR_MINIMUM_AVAILABILITY = {
    "tba": "TBA",
    "announced": "Announced",
    "inCinemas": "In cinemas",
    "released": "Released",
    "deleted": "Deleted",
}


class RadarrAdapter(ArrAdapter):
    family = BackendFamily.RADARR
    settings = (
        SettingKind.ROOT_FOLDER,
        SettingKind.MONITOR_TYPE,
        SettingKind.MINIMUM_AVAILABILITY,
        SettingKind.QUALITY_PROFILE,
    )
    static_values = {
        SettingKind.MONITOR_TYPE: RADARR_MONITOR_TYPES,
        SettingKind.MINIMUM_AVAILABILITY: RADARR_MINIMUM_AVAILABILITY,
    }
    defaults = {
        SettingKind.MONITOR_TYPE: "movieOnly",
        SettingKind.MINIMUM_AVAILABILITY: "released",
    }
    stops_early = True
    lookup_path = "/api/v3/movie/lookup"
    add_path = "/api/v3/movie"

    async def submit(
        self,
        candidate: MediaCandidate,
        resolved: Mapping[SettingKind, str],
        *,
        quality_profile_id: Optional[int] = None,
    ) -> SubmitOutcome:
        # A movie with a library id has nothing left to add.
        if candidate.already_tracked:
            log_event(
                self._logger,
                logging.INFO,
                "backend.submit.already_tracked",
                backend=self.name,
                title=candidate.display_title,
                tracked_id=candidate.tracked_id,
            )
            return SubmitOutcome.ALREADY_REQUESTED
        return await super().submit(
            candidate, resolved, quality_profile_id=quality_profile_id
        )

    def _parse_candidate(self, item: Mapping[str, Any]) -> Optional[MediaCandidate]:
        return candidate_from_lookup(item, identifier_key="tmdbId")

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
                "minimumAvailability": resolved[SettingKind.MINIMUM_AVAILABILITY],
                "monitored": monitor != "none",
                "addOptions": {
                    "monitor": monitor,
                    "searchForMovie": True,
                },
            }
        )
        return payload
