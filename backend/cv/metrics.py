"""Sliding-window latency statistics for the detection loop."""
from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from common.config.scheduler import LATENCY_WINDOW_SIZE
from common.types import Snapshot
from cv.exceptions import OutOfOrderTimestampError

P95_QUANTILE = 0.95


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with .5 going up, unlike the banker's rounding of ``round``."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


class MetricsAggregator:
    """
    Keeps the last ``window_size`` latencies and derives live telemetry.

    All timestamps are seconds on the same monotonic clock; latencies are
    stored in milliseconds. The tail percentile only looks at the window, so
    it tracks recent behaviour rather than all-time history.
    """

    def __init__(
        self,
        window_size: int = LATENCY_WINDOW_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._window: Deque[float] = deque(maxlen=window_size)
        self._clock = clock
        self._frames_processed = 0
        self._session_start: Optional[float] = None
        self._last_snapshot: Optional[Snapshot] = None

    @property
    def window(self) -> Tuple[float, ...]:
        return tuple(self._window)

    @property
    def window_size(self) -> int:
        return self._window.maxlen

    @property
    def frames_processed(self) -> int:
        return self._frames_processed

    @property
    def session_start(self) -> Optional[float]:
        return self._session_start

    @property
    def last_snapshot(self) -> Optional[Snapshot]:
        return self._last_snapshot

    def p95_latency_ms(self) -> float:
        if not self._window:
            return 0.0
        ordered = sorted(self._window)
        return ordered[math.floor(P95_QUANTILE * len(ordered))]

    def record(
        self,
        capture_ts: float,
        completion_ts: float,
        submission_ts: float | None = None,
    ) -> Snapshot:
        latency_ms = (completion_ts - capture_ts) * 1000.0
        if latency_ms < 0:
            raise OutOfOrderTimestampError(
                f"completion {completion_ts:.6f} precedes capture {capture_ts:.6f}"
            )

        if self._session_start is None:
            self._session_start = capture_ts
        self._window.append(latency_ms)
        self._frames_processed += 1

        elapsed = self._clock() - self._session_start
        fps = self._frames_processed / elapsed if elapsed > 0 else 0.0

        if submission_ts is not None and completion_ts >= submission_ts:
            inference_ms = (completion_ts - submission_ts) * 1000.0
        else:
            inference_ms = latency_ms

        self._last_snapshot = Snapshot(
            fps=round_half_up(fps, 1),
            latency_ms=int(round_half_up(latency_ms)),
            p95_latency_ms=int(round_half_up(self.p95_latency_ms())),
            inference_ms=int(round_half_up(inference_ms)),
            frames_processed=self._frames_processed,
            window_size=len(self._window),
        )
        return self._last_snapshot

    def reset(self) -> None:
        self._window.clear()
        self._frames_processed = 0
        self._session_start = None
        self._last_snapshot = None
