"""Redis pub/sub publisher for per-session detections and telemetry."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Tuple

from redis.exceptions import RedisError

from common.config import (
    TELEMETRY_PUBLISH_TIMEOUT_SEC,
    TELEMETRY_QUEUE_SIZE,
    create_async_redis_client,
    telemetry_channel,
)
from common.types import Detection, Snapshot

logger = logging.getLogger(__name__)


def _offer_latest(queue: asyncio.Queue, item) -> bool:
    """Non-blocking put that evicts the oldest item when full.

    Returns ``False`` when an older item had to be dropped.
    """
    dropped = False
    while True:
        try:
            queue.put_nowait(item)
            return not dropped
        except asyncio.QueueFull:
            try:
                queue.get_nowait()
                queue.task_done()
                dropped = True
            except asyncio.QueueEmpty:
                pass


class TelemetryPublisher:
    """
    Pushes payloads to ``telemetry:{session_id}`` from a single sender task.

    ``publish`` only queues the message and returns at once, so a slow or
    unreachable Redis never holds up the frame cycle that produced it. Each
    send is bounded by ``publish_timeout``; failures are logged and counted.
    Must be used from the event loop that runs the scheduler.
    """

    def __init__(
        self,
        max_pending: int = TELEMETRY_QUEUE_SIZE,
        publish_timeout: float = TELEMETRY_PUBLISH_TIMEOUT_SEC,
    ):
        self._redis = create_async_redis_client()
        self._publish_timeout = publish_timeout
        self._queue: asyncio.Queue[Tuple[str, str]] = asyncio.Queue(maxsize=max_pending)
        self._sender: Optional[asyncio.Task] = None
        self._closed = False
        self.dropped = 0
        self.failed = 0

    def publish(self, session_id: str, payload: dict) -> bool:
        """Queue a payload; returns ``False`` once the publisher is closed."""
        if self._closed:
            return False
        self._ensure_sender()
        if not _offer_latest(self._queue, (telemetry_channel(session_id), json.dumps(payload))):
            self.dropped += 1
            logger.debug("[%s] Telemetry backlog full, dropped oldest payload", session_id)
        return True

    def publish_snapshot(self, session_id: str, snapshot: Snapshot) -> bool:
        return self.publish(session_id, {"type": "metrics", **snapshot.model_dump()})

    def publish_detections(self, session_id: str, detections: List[Detection]) -> bool:
        return self.publish(
            session_id,
            {"type": "detections", "detections": [d.model_dump() for d in detections]},
        )

    def renderer_for(self, session_id: str) -> "SessionRenderer":
        return SessionRenderer(self, session_id)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _ensure_sender(self) -> None:
        if self._sender is None or self._sender.done():
            self._sender = asyncio.get_running_loop().create_task(self._send_loop())

    async def _send_loop(self) -> None:
        while True:
            channel, data = await self._queue.get()
            try:
                await asyncio.wait_for(self._redis.publish(channel, data), timeout=self._publish_timeout)
            except (RedisError, asyncio.TimeoutError) as exc:
                self.failed += 1
                logger.warning("Telemetry publish to %s failed: %s", channel, exc or type(exc).__name__)
            except Exception:
                self.failed += 1
                logger.exception("Unexpected telemetry publish error on %s", channel)
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued payload was sent or given up on."""
        if self._sender is not None and not self._sender.done():
            await self._queue.join()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._sender is not None:
            try:
                await asyncio.wait_for(self.flush(), timeout=self._publish_timeout)
            except asyncio.TimeoutError:
                logger.warning("Telemetry flush timed out with %d payloads pending", self.pending)
            self._sender.cancel()
            await asyncio.gather(self._sender, return_exceptions=True)
        try:
            await self._redis.aclose()
        except Exception:
            logger.debug("Redis close failed", exc_info=True)


class SessionRenderer:
    """Renderer that hands re-projected detections to the overlay client."""

    def __init__(self, publisher: TelemetryPublisher, session_id: str):
        self._publisher = publisher
        self.session_id = session_id

    def render(self, detections: List[Detection]) -> None:
        self._publisher.publish_detections(self.session_id, detections)
