"""Backend adapters for Radarr/Sonarr style media managers."""

from .errors import BackendError, BackendRejected, BackendUnreachable, UnknownBackend
from .models import (
    BackendFamily,
    MediaCandidate,
    OptionValue,
    SettingKind,
    SubmitOutcome,
)
from .radarr import RadarrAdapter
from .registry import BackendConfig, BackendRegistry, build_registry
from .sonarr import SonarrAdapter

__all__ = [
    "BackendConfig",
    "BackendError",
    "BackendFamily",
    "BackendRegistry",
    "BackendRejected",
    "BackendUnreachable",
    "MediaCandidate",
    "OptionValue",
    "RadarrAdapter",
    "SettingKind",
    "SonarrAdapter",
    "SubmitOutcome",
    "UnknownBackend",
    "build_registry",
]
