"""Platform-neutral descriptions of workflow prompts and inbound events.

The workflow produces ``RenderDirective`` values; the Discord integration
turns them into interaction responses and component payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .session import Stage

ACTION_SELECT = "select"
ACTION_OPTION = "option"
ACTION_CONFIRM = "confirm"
ACTION_CANCEL = "cancel"
ACTION_RETRY = "retry"
ACTION_PAGE = "page"
ACTIONS = frozenset(
    {
        ACTION_SELECT,
        ACTION_OPTION,
        ACTION_CONFIRM,
        ACTION_CANCEL,
        ACTION_RETRY,
        ACTION_PAGE,
    }
)


class ResponseMode(str, Enum):
    # Replaces the deferred acknowledgement of the slash command.
    INITIAL = "initial"
    # Edits the workflow message in place.
    EDIT = "edit"
    # Separate ephemeral reply; the workflow message is left alone.
    NOTICE = "notice"


class ComponentKind(str, Enum):
    SELECT = "select"
    BUTTON = "button"


class ButtonStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    DANGER = "danger"


@dataclass(frozen=True)
class Choice:
    label: str
    value: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ComponentSpec:
    kind: ComponentKind
    action: str
    correlation_id: str
    label: str
    argument: Optional[str] = None
    choices: tuple[Choice, ...] = ()
    style: ButtonStyle = ButtonStyle.SECONDARY


@dataclass(frozen=True)
class RenderDirective:
    content: str
    components: tuple[ComponentSpec, ...] = ()
    mode: ResponseMode = ResponseMode.EDIT
    stage: Optional[Stage] = None
    announcement: Optional[str] = None


@dataclass(frozen=True)
class CommandEvent:
    interaction_id: str
    interaction_token: str
    user_id: str
    media_name: str
    query: str
    channel_id: Optional[str] = None

    @property
    def correlation_id(self) -> str:
        return self.interaction_id


@dataclass(frozen=True)
class ComponentEvent:
    interaction_id: str
    interaction_token: str
    user_id: str
    correlation_id: str
    action: str
    argument: Optional[str] = None
    values: tuple[str, ...] = ()
    channel_id: Optional[str] = None
