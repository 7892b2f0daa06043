from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..backends.models import MediaCandidate, OptionValue, SettingKind
from .errors import InvalidTransition

# Discord interaction tokens can edit their message for 15 minutes; keep a
# margin so an edit is never attempted right at the boundary.
INTERACTION_TOKEN_LIFETIME_SECONDS = 15 * 60 - 30


class Stage(str, Enum):
    SEARCHING = "searching"
    AWAITING_SELECTION = "awaiting_selection"
    CONFIGURING_SETTINGS = "configuring_settings"
    CONFIRMING_SUBMISSION = "confirming_submission"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def rank(self) -> int:
        return _STAGE_RANKS[self]

    def is_terminal(self) -> bool:
        return self.rank == _TERMINAL_RANK


_TERMINAL_RANK = 4
_STAGE_RANKS = {
    Stage.SEARCHING: 0,
    Stage.AWAITING_SELECTION: 1,
    Stage.CONFIGURING_SETTINGS: 2,
    Stage.CONFIRMING_SUBMISSION: 3,
    Stage.COMPLETED: _TERMINAL_RANK,
    Stage.FAILED: _TERMINAL_RANK,
    Stage.CANCELLED: _TERMINAL_RANK,
    Stage.EXPIRED: _TERMINAL_RANK,
}


@dataclass(frozen=True)
class SettingPrompt:
    setting: SettingKind
    options: tuple[OptionValue, ...]
    # Index of the first option on the page being shown.
    offset: int = 0


@dataclass
class Session:
    correlation_id: str
    requester: str
    media_name: str
    created_at: float
    expires_at: float
    stage: Stage = Stage.SEARCHING
    query: str = ""
    channel_id: Optional[str] = None
    candidates: list[MediaCandidate] = field(default_factory=list)
    selected: Optional[MediaCandidate] = None
    pending_settings: dict[SettingKind, str] = field(default_factory=dict)
    option_cache: dict[SettingKind, list[OptionValue]] = field(default_factory=dict)
    prompt: Optional[SettingPrompt] = None
    busy: bool = False
    interaction_token: Optional[str] = None
    token_expires_at: Optional[float] = None
    history: list[Stage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.stage)

    def advance(self, stage: Stage) -> None:
        if self.stage.is_terminal():
            raise InvalidTransition(
                f"session {self.correlation_id} already ended as {self.stage.value}"
            )
        if stage.rank < self.stage.rank:
            raise InvalidTransition(
                f"session {self.correlation_id} cannot move from "
                f"{self.stage.value} back to {stage.value}"
            )
        self.stage = stage
        self.history.append(stage)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remember_token(self, token: Optional[str], *, now: float) -> None:
        if not token:
            return
        self.interaction_token = token
        self.token_expires_at = now + INTERACTION_TOKEN_LIFETIME_SECONDS

    def token_valid(self, now: float) -> bool:
        return (
            self.interaction_token is not None
            and self.token_expires_at is not None
            and now < self.token_expires_at
        )
