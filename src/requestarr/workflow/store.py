"""In-memory table of live request sessions.

The store is the single synchronization point for workflow state. Each
session has its own ``asyncio.Lock``; ``lease`` holds it only while a
transition inspects or mutates the session, never across a backend call.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..core.config import (
    DEFAULT_EVICTION_INTERVAL_SECONDS,
    DEFAULT_SESSION_TIMEOUT_SECONDS,
)
from ..core.logging_utils import log_event
from .errors import DuplicateSession, SessionExpired, SessionNotFound
from .session import Session, Stage

Clock = Callable[[], float]
EvictionCallback = Callable[[Session], Awaitable[None]]


class SessionStore:
    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_SESSION_TIMEOUT_SECONDS,
        clock: Clock = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._timeout_seconds = float(timeout_seconds)
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        correlation_id: str,
        requester: str,
        media_name: str,
        *,
        channel_id: Optional[str] = None,
        interaction_token: Optional[str] = None,
    ) -> Session:
        existing = self._sessions.get(correlation_id)
        if existing is not None:
            if not existing.is_expired(self.now()):
                raise DuplicateSession(correlation_id)
            self._drop(correlation_id)
        now = self.now()
        session = Session(
            correlation_id=correlation_id,
            requester=requester,
            media_name=media_name,
            created_at=now,
            expires_at=now + self._timeout_seconds,
            channel_id=channel_id,
        )
        session.remember_token(interaction_token, now=now)
        self._sessions[correlation_id] = session
        self._locks[correlation_id] = asyncio.Lock()
        log_event(
            self._logger,
            logging.DEBUG,
            "session.created",
            correlation_id=correlation_id,
            requester=requester,
            media_name=media_name,
        )
        return session

    def get(self, correlation_id: str) -> Session:
        session = self._sessions.get(correlation_id)
        if session is None or session.stage.is_terminal():
            raise SessionNotFound(correlation_id)
        if session.is_expired(self.now()):
            session.advance(Stage.EXPIRED)
            self._drop(correlation_id)
            log_event(
                self._logger,
                logging.INFO,
                "session.expired",
                correlation_id=correlation_id,
                stage=session.history[-2].value,
            )
            raise SessionExpired(correlation_id)
        return session

    def remove(self, correlation_id: str) -> None:
        session = self._drop(correlation_id)
        if session is not None:
            log_event(
                self._logger,
                logging.DEBUG,
                "session.removed",
                correlation_id=correlation_id,
                stage=session.stage.value,
            )

    @contextlib.asynccontextmanager
    async def lease(self, correlation_id: str) -> AsyncIterator[Session]:
        self.get(correlation_id)
        lock = self._locks[correlation_id]
        async with lock:
            # The session may have ended while this caller waited on the lock.
            yield self.get(correlation_id)

    def evict_expired(self) -> list[Session]:
        now = self.now()
        expired = [
            session
            for session in self._sessions.values()
            if session.is_expired(now) and not session.stage.is_terminal()
        ]
        for session in expired:
            session.advance(Stage.EXPIRED)
            self._drop(session.correlation_id)
        if expired:
            log_event(
                self._logger,
                logging.INFO,
                "session.evicted",
                count=len(expired),
                remaining=len(self._sessions),
            )
        return expired

    async def run_eviction_loop(
        self,
        *,
        interval_seconds: float = DEFAULT_EVICTION_INTERVAL_SECONDS,
        on_evicted: Optional[EvictionCallback] = None,
    ) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            for session in self.evict_expired():
                if on_evicted is None:
                    continue
                try:
                    await on_evicted(session)
                except Exception as exc:
                    log_event(
                        self._logger,
                        logging.WARNING,
                        "session.eviction_callback.failed",
                        correlation_id=session.correlation_id,
                        exc=exc,
                    )

    def _drop(self, correlation_id: str) -> Optional[Session]:
        self._locks.pop(correlation_id, None)
        return self._sessions.pop(correlation_id, None)
