from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError
from .logging_utils import parse_log_level

DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_SESSION_TIMEOUT_SECONDS = 300
# Discord interaction tokens are valid for 15 minutes.
MAX_SESSION_TIMEOUT_SECONDS = 900
DEFAULT_EVICTION_INTERVAL_SECONDS = 60
DEFAULT_BACKEND_TIMEOUT_SECONDS = 30.0
DEFAULT_BACKEND_CONNECT_TIMEOUT_SECONDS = 10.0

BACKEND_FAMILIES = ("radarr", "sonarr")

# Config key -> setting name. Several spellings are accepted for the same
# setting so existing config files keep working.
_OVERRIDE_KEYS = {
    "quality_profile": "quality_profile",
    "rootfolder": "root_folder",
    "root_folder": "root_folder",
    "monitor_type": "monitor_type",
    "minimum_availability": "minimum_availability",
    "series_type": "series_type",
    "season_folders": "season_folder",
    "season_folder": "season_folder",
}
_ALLOWED_KEYS = {
    "allowed_quality_profiles": "quality_profile",
    "allowed_root_folders": "root_folder",
    "allowed_monitor_types": "monitor_type",
    "allowed_minimum_availability": "minimum_availability",
    "allowed_series_types": "series_type",
}
_CONNECTION_KEYS = {"url", "api_key", "timeout_seconds", "connect_timeout_seconds"}


@dataclass(frozen=True)
class BackendSettings:
    media_name: str
    family: str
    url: str
    api_key: str
    overrides: dict[str, str] = field(default_factory=dict)
    allowed_choices: dict[str, tuple[str, ...]] = field(default_factory=dict)
    timeout_seconds: float = DEFAULT_BACKEND_TIMEOUT_SECONDS
    connect_timeout_seconds: float = DEFAULT_BACKEND_CONNECT_TIMEOUT_SECONDS

    @classmethod
    def from_raw(cls, raw: Any, *, index: int) -> "BackendSettings":
        where = f"backends[{index}]"
        if not isinstance(raw, dict):
            raise ConfigError(f"{where} must be a table")
        media_name = raw.get("media")
        if not isinstance(media_name, str) or not media_name.strip():
            raise ConfigError(f"{where}.media must be a non-empty string")
        media_name = media_name.strip().lower()

        config_raw = raw.get("config")
        if not isinstance(config_raw, dict) or len(config_raw) != 1:
            raise ConfigError(
                f"{where}.config must contain exactly one of: Radarr, Sonarr"
            )
        family_key, body = next(iter(config_raw.items()))
        family = str(family_key).strip().lower()
        if family not in BACKEND_FAMILIES:
            raise ConfigError(f"{where}.config has unknown backend {family_key!r}")
        if not isinstance(body, dict):
            raise ConfigError(f"{where}.config.{family_key} must be a table")
        prefix = f"{where}.config.{family_key}"

        url = body.get("url")
        if not isinstance(url, str) or not url.strip().startswith(
            ("http://", "https://")
        ):
            raise ConfigError(f"{prefix}.url must be an http(s) URL")
        api_key = body.get("api_key")
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigError(f"{prefix}.api_key must be a non-empty string")

        overrides: dict[str, str] = {}
        allowed_choices: dict[str, tuple[str, ...]] = {}
        for key, value in body.items():
            if key in _CONNECTION_KEYS:
                continue
            if key in _OVERRIDE_KEYS:
                setting = _OVERRIDE_KEYS[key]
                if setting in overrides:
                    raise ConfigError(f"{prefix} sets {setting} more than once")
                overrides[setting] = _parse_override(value, key=f"{prefix}.{key}")
                continue
            if key in _ALLOWED_KEYS:
                allowed_choices[_ALLOWED_KEYS[key]] = tuple(
                    _parse_string_list(value, key=f"{prefix}.{key}")
                )
                continue
            raise ConfigError(f"{prefix} has unknown key {key!r}")

        return cls(
            media_name=media_name,
            family=family,
            url=url.strip(),
            api_key=api_key.strip(),
            overrides=overrides,
            allowed_choices=allowed_choices,
            timeout_seconds=_parse_positive_float_or_default(
                body.get("timeout_seconds"),
                default=DEFAULT_BACKEND_TIMEOUT_SECONDS,
                key=f"{prefix}.timeout_seconds",
            ),
            connect_timeout_seconds=_parse_positive_float_or_default(
                body.get("connect_timeout_seconds"),
                default=DEFAULT_BACKEND_CONNECT_TIMEOUT_SECONDS,
                key=f"{prefix}.connect_timeout_seconds",
            ),
        )


@dataclass(frozen=True)
class AppConfig:
    path: Optional[Path]
    raw: dict[str, Any]
    log_level: int
    log_file: Optional[Path]
    session_timeout_seconds: int
    eviction_interval_seconds: int
    backends: tuple[BackendSettings, ...]

    @classmethod
    def from_raw(cls, raw: Any, *, path: Optional[Path] = None) -> "AppConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        backends_raw = cfg.get("backends")
        if not isinstance(backends_raw, list) or not backends_raw:
            raise ConfigError("at least one [[backends]] entry is required")
        backends = tuple(
            BackendSettings.from_raw(item, index=index)
            for index, item in enumerate(backends_raw)
        )

        session_timeout = _parse_positive_int_or_default(
            cfg.get("session_timeout_seconds"),
            default=DEFAULT_SESSION_TIMEOUT_SECONDS,
            key="session_timeout_seconds",
        )
        if session_timeout > MAX_SESSION_TIMEOUT_SECONDS:
            raise ConfigError(
                "session_timeout_seconds must not exceed "
                f"{MAX_SESSION_TIMEOUT_SECONDS} (Discord token lifetime)"
            )

        log_file_value = cfg.get("log_file")
        log_file: Optional[Path] = None
        if log_file_value is not None:
            if not isinstance(log_file_value, str) or not log_file_value.strip():
                raise ConfigError("log_file must be a string path")
            log_file = Path(log_file_value).expanduser()
            if path is not None and not log_file.is_absolute():
                log_file = (path.parent / log_file).resolve()

        return cls(
            path=path,
            raw=cfg,
            log_level=parse_log_level(cfg.get("log_level"), default=logging.INFO),
            log_file=log_file,
            session_timeout_seconds=session_timeout,
            eviction_interval_seconds=_parse_positive_int_or_default(
                cfg.get("eviction_interval_seconds"),
                default=DEFAULT_EVICTION_INTERVAL_SECONDS,
                key="eviction_interval_seconds",
            ),
            backends=backends,
        )


def load_app_config(path: Path) -> AppConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"unable to read config file {path}: {exc}") from exc
    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    return AppConfig.from_raw(raw, path=path)


def _parse_override(value: Any, *, key: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ConfigError(f"{key} must be a non-empty string or boolean")


def _parse_string_list(value: Any, *, key: str) -> list[str]:
    items = value if isinstance(value, (list, tuple)) else [value]
    parsed: list[str] = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{key} must be a list of non-empty strings")
        token = item.strip()
        if token not in parsed:
            parsed.append(token)
    if not parsed:
        raise ConfigError(f"{key} must not be empty")
    return parsed


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_positive_float_or_default(value: Any, *, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        return default
    return parsed
