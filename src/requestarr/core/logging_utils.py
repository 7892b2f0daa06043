from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 3
REDACTED = "<redacted>"

_SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "apikey",
        "x-api-key",
        "token",
        "interaction_token",
        "bot_token",
        "discord_token",
        "authorization",
        "password",
    }
)
_MAX_VALUE_CHARS = 500

_LEVEL_NAMES = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def parse_log_level(value: Any, *, default: int = logging.INFO) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.strip():
        return default
    return _LEVEL_NAMES.get(value.strip().lower(), default)


def sanitize_log_value(value: Any, *, key: Optional[str] = None) -> Any:
    """Make a value safe for a single JSON log line.

    Secrets are redacted by key name, nested containers are sanitized
    recursively and long strings are clipped.
    """
    if key is not None and key.strip().lower() in _SENSITIVE_KEYS:
        return REDACTED if value not in (None, "") else value
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {
            str(k): sanitize_log_value(v, key=str(k)) for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_log_value(item) for item in value]
    text = str(value)
    if len(text) > _MAX_VALUE_CHARS:
        return text[: _MAX_VALUE_CHARS - 3] + "..."
    return text


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = sanitize_log_value(value, key=key)
    if exc is not None:
        payload["error"] = sanitize_log_value(str(exc))
        payload["error_type"] = type(exc).__name__
    message = json.dumps(payload, separators=(",", ":"), default=str)
    if exc is not None and level >= logging.ERROR:
        logger.log(level, message, exc_info=exc)
    else:
        logger.log(level, message)


def setup_rotating_logger(
    name: str,
    *,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
