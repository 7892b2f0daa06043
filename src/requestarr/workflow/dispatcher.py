"""Entry point for decoded command and component events."""

from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from ..backends.errors import BackendUnreachable, UnknownBackend
from ..backends.registry import BackendRegistry
from ..core.logging_utils import log_event
from ..core.retry import DEFAULT_BACKEND_ATTEMPTS, call_with_retry
from .errors import DuplicateSession, SessionNotFound
from .machine import RequestWorkflow
from .render import CommandEvent, ComponentEvent, RenderDirective, ResponseMode
from .store import SessionStore


class CommandDispatcher:
    """Routes slash commands to new sessions and components to live ones.

    Backend calls made on behalf of a dispatched event go through
    ``call_with_retry`` so an unreachable backend is tried
    ``backend_attempts`` times before the workflow reports it.
    """

    def __init__(
        self,
        store: SessionStore,
        registry: BackendRegistry,
        *,
        workflow: Optional[RequestWorkflow] = None,
        public_followup: bool = True,
        backend_attempts: int = DEFAULT_BACKEND_ATTEMPTS,
        retry_wait_seconds: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._logger = logger or logging.getLogger(__name__)
        self._workflow = workflow or RequestWorkflow(
            store,
            registry,
            public_followup=public_followup,
            call_backend=partial(
                call_with_retry,
                max_attempts=backend_attempts,
                wait_seconds=retry_wait_seconds,
                retry_on=BackendUnreachable,
                logger=self._logger,
            ),
            logger=self._logger,
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def workflow(self) -> RequestWorkflow:
        return self._workflow

    async def on_command(self, event: CommandEvent) -> RenderDirective:
        log_event(
            self._logger,
            logging.INFO,
            "dispatcher.command.received",
            correlation_id=event.correlation_id,
            user_id=event.user_id,
            media_name=event.media_name,
            query=event.query,
        )
        try:
            self._registry.resolve(event.media_name)
            self._store.create(
                event.correlation_id,
                event.user_id,
                event.media_name,
                channel_id=event.channel_id,
                interaction_token=event.interaction_token,
            )
        except (UnknownBackend, DuplicateSession) as exc:
            log_event(
                self._logger,
                logging.INFO,
                "dispatcher.command.rejected",
                correlation_id=event.correlation_id,
                media_name=event.media_name,
                exc=exc,
            )
            return self._workflow.render_error(exc, mode=ResponseMode.INITIAL)
        return await self._workflow.start(event.correlation_id, event.query)

    async def on_component(self, event: ComponentEvent) -> RenderDirective:
        log_event(
            self._logger,
            logging.DEBUG,
            "dispatcher.component.received",
            correlation_id=event.correlation_id,
            user_id=event.user_id,
            action=event.action,
        )
        try:
            session = self._store.get(event.correlation_id)
        except SessionNotFound as exc:
            log_event(
                self._logger,
                logging.INFO,
                "dispatcher.component.stale",
                correlation_id=event.correlation_id,
                action=event.action,
            )
            return self._workflow.render_error(exc)
        if session.requester != event.user_id:
            return self._workflow.render_unauthorized(session, event)
        return await self._workflow.resume(event)
