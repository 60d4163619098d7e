"""Detection session: serializes lifecycle events and drives the scheduler."""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, List, Optional, Union
from uuid import uuid4

from cv.scheduler import FrameScheduler
from session.exceptions import SessionClosedError
from session.machine import transition
from session.types import Effect, SessionEvent, SessionState

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"session_{uuid4().hex[:12]}"


class DetectionSession:
    """
    Owns one scheduler and the state machine that gates it.

    Events are consumed by a single task in arrival order. The session does no
    I/O of its own; it only applies transition effects to the scheduler.
    """

    def __init__(
        self,
        scheduler: FrameScheduler,
        session_id: str | None = None,
        on_close: Callable[[], Union[None, Awaitable[None]]] | None = None,
    ):
        self.session_id = session_id or new_session_id()
        self.scheduler = scheduler
        self.scheduler.session_id = self.session_id
        self.created_at = time.monotonic()
        self.closed_at: float | None = None
        self._on_close = on_close
        self._state = SessionState.IDLE
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._history: List[SessionState] = [SessionState.IDLE]

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> List[SessionState]:
        return list(self._history)

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    def start(self) -> None:
        if self._consumer is not None:
            return
        self._consumer = asyncio.get_running_loop().create_task(self._consume())

    def post(self, event: SessionEvent | str) -> bool:
        """Queue an event; returns ``False`` once the session is closed."""
        if self.is_closed:
            logger.debug("[%s] Ignoring %s after close", self.session_id, event)
            return False
        self.start()
        self._events.put_nowait(SessionEvent(event))
        return True

    def post_threadsafe(self, loop: asyncio.AbstractEventLoop, event: SessionEvent | str) -> None:
        """Deliver an event from a connection callback running on another thread."""
        loop.call_soon_threadsafe(self.post, event)

    async def dispatch(self, event: SessionEvent | str) -> SessionState:
        """Queue an event and wait until every queued event has been applied."""
        if not self.post(event):
            raise SessionClosedError(f"Session '{self.session_id}' is closed")
        await self._events.join()
        return self._state

    async def close(self) -> None:
        if not self.is_closed:
            self.post(SessionEvent.CONNECTION_CLOSED)
        if self._consumer is not None:
            await self._consumer
        await self.scheduler.drain()

    async def _consume(self) -> None:
        while not self.is_closed:
            event = await self._events.get()
            try:
                await self._apply(event)
            except Exception:
                logger.exception("[%s] Failed to apply %s", self.session_id, event.value)
            finally:
                self._events.task_done()

        # Nothing fires after close; drop whatever arrived in the meantime.
        while not self._events.empty():
            dropped = self._events.get_nowait()
            self._events.task_done()
            logger.debug("[%s] Dropped %s queued after close", self.session_id, dropped.value)

    async def _apply(self, event: SessionEvent) -> None:
        previous = self._state
        result = transition(previous, event)
        if result.state is previous and not result.effects:
            logger.debug("[%s] Ignored %s in state %s", self.session_id, event.value, previous.value)
            return

        self._state = result.state
        if result.state is not previous:
            self._history.append(result.state)
        logger.info(
            "[%s] %s -> %s on %s",
            self.session_id,
            previous.value,
            result.state.value,
            event.value,
        )

        for effect in result.effects:
            if effect is Effect.START_SCHEDULER:
                self.scheduler.start()
            elif effect is Effect.STOP_SCHEDULER:
                self.scheduler.stop()
            elif effect is Effect.RELEASE_RESOURCES:
                self.scheduler.release()
                self.closed_at = time.monotonic()
                await self._release()

    async def _release(self) -> None:
        # Blocking hooks must be coroutines that offload to a thread.
        if self._on_close is None:
            return
        result = self._on_close()
        if inspect.isawaitable(result):
            await result

    def to_dict(self) -> dict:
        snapshot = self.scheduler.last_snapshot
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "adaptive_delay_ms": round(self.scheduler.adaptive_delay_ms, 1),
            "frames_processed": self.scheduler.aggregator.frames_processed,
            "metrics": snapshot.model_dump() if snapshot else None,
            "created_at_monotonic": self.created_at,
            "closed_at_monotonic": self.closed_at,
        }
