"""Registry of live detection sessions."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Set

from common.config.api import MAX_SESSIONS
from session.exceptions import (
    ResourceLimitExceededError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)
from session.session import DetectionSession
from session.types import SessionConfig

logger = logging.getLogger(__name__)

SessionFactory = Callable[[SessionConfig], DetectionSession]


class SessionRegistry:
    """
    Tracks sessions by id. Lives on the event loop; callers are coroutines or
    loop callbacks, so no locking is needed.
    """

    def __init__(self, factory: SessionFactory, max_sessions: int = MAX_SESSIONS):
        self._factory = factory
        self._max_sessions = max_sessions
        self._sessions: Dict[str, DetectionSession] = {}
        self._building: Set[str] = set()

    def _prune_closed(self) -> None:
        closed = [sid for sid, s in self._sessions.items() if s.is_closed]
        for sid in closed:
            self._sessions.pop(sid, None)

    async def create_session(self, config: SessionConfig) -> DetectionSession:
        """Build a session off the event loop and register it.

        Building opens the capture and loads the detector, both of which block,
        so the factory runs in a worker thread. The id is reserved meanwhile.
        """
        self._prune_closed()
        if config.session_id in self._sessions or config.session_id in self._building:
            raise SessionAlreadyExistsError(f"Session '{config.session_id}' already exists")
        if len(self._sessions) + len(self._building) >= self._max_sessions:
            raise ResourceLimitExceededError("Max concurrent sessions reached")

        self._building.add(config.session_id)
        try:
            session = await asyncio.to_thread(self._factory, config)
        finally:
            self._building.discard(config.session_id)
        session.start()
        self._sessions[session.session_id] = session
        logger.info("Created session '%s' for %s", session.session_id, config.source_url)
        return session

    def get_session(self, session_id: str) -> DetectionSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return session

    async def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        await session.close()
        logger.info("Closed session '%s'", session_id)

    def list_sessions(self) -> list[dict]:
        self._prune_closed()
        return [s.to_dict() for s in self._sessions.values()]

    def __len__(self) -> int:
        self._prune_closed()
        return len(self._sessions)

    async def shutdown(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.close()
            except Exception:
                logger.exception("Failed to close session '%s'", session.session_id)
        logger.info("Session registry shutdown complete")
