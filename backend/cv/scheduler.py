"""Adaptive frame scheduler: paces serialized detector calls to a frame budget."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from common.config.scheduler import WORKING_HEIGHT, WORKING_WIDTH, SchedulerSettings
from common.types import Snapshot
from cv.exceptions import (
    InvalidDimensionError,
    OutOfOrderTimestampError,
    SourceNotReadyError,
)
from cv.metrics import MetricsAggregator
from cv.reprojection import reproject_all
from cv.types import (
    CycleOutcome,
    CycleResult,
    Detector,
    FrameJob,
    Renderer,
    TelemetrySink,
    VideoSource,
)

logger = logging.getLogger(__name__)


class FrameScheduler:
    """
    Self-rescheduling detection loop.

    One cycle is outstanding at a time and the detector is never called while
    a previous call is still in flight. ``run_cycle`` is a single iteration and
    returns the delay before the next one; ``start``/``stop`` drive it from the
    running event loop through a single pending timer handle.
    """

    def __init__(
        self,
        source: VideoSource,
        detector: Detector,
        working_size: Tuple[int, int] = (WORKING_WIDTH, WORKING_HEIGHT),
        settings: SchedulerSettings | None = None,
        renderer: Renderer | None = None,
        telemetry: TelemetrySink | None = None,
        aggregator: MetricsAggregator | None = None,
        session_id: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        working_w, working_h = working_size
        if working_w <= 0 or working_h <= 0:
            raise InvalidDimensionError(f"Invalid working size {working_w}x{working_h}")

        self.settings = settings or SchedulerSettings()
        self.session_id = session_id
        self._source = source
        self._detector = detector
        self._renderer = renderer
        self._telemetry = telemetry
        self._clock = clock
        self._working_size = (int(working_w), int(working_h))
        self.aggregator = aggregator or MetricsAggregator(
            window_size=self.settings.window_size,
            clock=clock,
        )

        # Allocated once, resized into on every accepted cycle.
        self._buffer: Optional[np.ndarray] = np.zeros((working_h, working_w, 3), dtype=np.uint8)
        self._delay_ms = self.settings.initial_delay_ms
        self._last_accepted: Optional[float] = None
        self._in_flight = False

        self._running = False
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    # ---------- State ----------

    @property
    def adaptive_delay_ms(self) -> float:
        return self._delay_ms

    @property
    def working_size(self) -> Tuple[int, int]:
        return self._working_size

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def is_released(self) -> bool:
        return self._buffer is None

    @property
    def last_snapshot(self) -> Optional[Snapshot]:
        return self.aggregator.last_snapshot

    # ---------- Single cycle ----------

    def _display_size(self) -> Optional[Tuple[int, int]]:
        width, height = self._source.natural_dimensions()
        if width <= 0 or height <= 0:
            return None
        return int(width), int(height)

    def _capture(self, now: float) -> FrameJob:
        frame = self._source.current_frame()
        if frame is None:
            raise SourceNotReadyError("Source returned no frame")
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        working_w, working_h = self._working_size
        if frame.shape == self._buffer.shape:
            np.copyto(self._buffer, frame)
        else:
            cv2.resize(frame, (working_w, working_h), dst=self._buffer, interpolation=cv2.INTER_AREA)
        return FrameJob(captured_at=now, submitted_at=self._clock(), image=self._buffer)

    async def run_cycle(self) -> CycleResult:
        if self._buffer is None:
            return CycleResult(CycleOutcome.DISCARDED, self._delay_ms)

        now = self._clock()
        if self._last_accepted is not None:
            elapsed_ms = (now - self._last_accepted) * 1000.0
            if elapsed_ms < self._delay_ms:
                return CycleResult(CycleOutcome.SKIPPED, self._delay_ms - elapsed_ms)

        display_size = self._display_size()
        if display_size is None or not self._source.is_ready():
            return CycleResult(CycleOutcome.DEFERRED, self._delay_ms)

        try:
            job = self._capture(now)
        except SourceNotReadyError as exc:
            logger.debug("[%s] Deferring cycle: %s", self.session_id, exc)
            return CycleResult(CycleOutcome.DEFERRED, self._delay_ms)

        self._last_accepted = now
        generation = self._generation
        self._in_flight = True
        try:
            raw = await self._detector.detect(job.image)
        except Exception as exc:
            self._delay_ms = self.settings.fallback_delay_ms
            logger.warning(
                "[%s] Detection failed (%s: %s); retrying in %.0fms",
                self.session_id,
                type(exc).__name__,
                exc,
                self._delay_ms,
            )
            return CycleResult(CycleOutcome.FAILED, self._delay_ms)
        finally:
            self._in_flight = False

        job.completed_at = self._clock()
        if generation != self._generation or self._buffer is None:
            logger.debug("[%s] Dropping late detection result", self.session_id)
            return CycleResult(CycleOutcome.DISCARDED, self._delay_ms)

        detections = reproject_all(raw, self._working_size, display_size)
        if self._renderer is not None:
            self._renderer.render(detections)

        snapshot: Optional[Snapshot] = None
        try:
            snapshot = self.aggregator.record(job.captured_at, job.completed_at, job.submitted_at)
        except OutOfOrderTimestampError as exc:
            logger.warning("[%s] Skipping metrics for frame: %s", self.session_id, exc)
        if snapshot is not None and self._telemetry is not None:
            self._telemetry.publish_snapshot(self.session_id, snapshot)

        processing_ms = job.processing_seconds * 1000.0
        self._delay_ms = self.settings.clamp_delay(processing_ms * self.settings.headroom)
        return CycleResult(CycleOutcome.COMPLETED, self._delay_ms, tuple(detections), snapshot)

    # ---------- Loop driving ----------

    def start(self) -> None:
        if self._buffer is None:
            raise RuntimeError("Scheduler resources were released")
        if self._running:
            return
        self._running = True
        self._generation += 1
        self._schedule(0.0)
        logger.info("[%s] Frame scheduler started (delay=%.0fms)", self.session_id, self._delay_ms)

    def stop(self) -> None:
        if not self._running:
            self.cancel_pending()
            return
        self._running = False
        # Any in-flight result from the previous generation is dropped on arrival.
        self._generation += 1
        self.cancel_pending()
        logger.info("[%s] Frame scheduler stopped", self.session_id)

    def cancel_pending(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def release(self) -> None:
        self.stop()
        self._buffer = None
        logger.info("[%s] Frame scheduler resources released", self.session_id)

    async def drain(self) -> None:
        """Wait for the current cycle, if any, to resolve."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def _schedule(self, delay_seconds: float) -> None:
        self.cancel_pending()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(max(0.0, delay_seconds), self._dispatch, self._generation)

    def _dispatch(self, generation: int) -> None:
        self._timer = None
        if not self._running or generation != self._generation:
            return
        if self._task is not None and not self._task.done():
            # A call from before a stop/start is still out; keep calls serialized.
            self._schedule(self._delay_ms / 1000.0)
            return
        self._task = asyncio.get_running_loop().create_task(self._tick(generation))

    async def _tick(self, generation: int) -> None:
        try:
            result = await self.run_cycle()
            delay_ms = result.delay_ms
        except Exception:
            self._delay_ms = self.settings.fallback_delay_ms
            delay_ms = self._delay_ms
            logger.exception("[%s] Frame cycle failed", self.session_id)

        if self._running and generation == self._generation:
            self._schedule(delay_ms / 1000.0)
