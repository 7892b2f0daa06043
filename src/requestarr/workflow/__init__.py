"""Request sessions, their state machine and the event dispatcher."""

from .dispatcher import CommandDispatcher
from .errors import (
    EXPIRED_MESSAGE,
    DuplicateSession,
    InvalidTransition,
    SessionError,
    SessionExpired,
    SessionNotFound,
)
from .machine import RequestWorkflow
from .render import (
    CommandEvent,
    ComponentEvent,
    ComponentSpec,
    RenderDirective,
    ResponseMode,
)
from .session import Session, Stage
from .store import SessionStore

__all__ = [
    "EXPIRED_MESSAGE",
    "CommandDispatcher",
    "CommandEvent",
    "ComponentEvent",
    "ComponentSpec",
    "DuplicateSession",
    "InvalidTransition",
    "RenderDirective",
    "RequestWorkflow",
    "ResponseMode",
    "Session",
    "SessionError",
    "SessionExpired",
    "SessionNotFound",
    "SessionStore",
    "Stage",
]
