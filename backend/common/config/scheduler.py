"""Frame scheduler and telemetry window configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass

TARGET_FPS = float(os.getenv("TARGET_FPS", "15"))
MIN_DELAY_MS = float(os.getenv("MIN_DELAY_MS", "30"))
MAX_DELAY_MS = float(os.getenv("MAX_DELAY_MS", "200"))
FALLBACK_DELAY_MS = float(os.getenv("FALLBACK_DELAY_MS", "100"))
# Run slightly slower than the measured detector cost to absorb jitter.
DELAY_HEADROOM = float(os.getenv("DELAY_HEADROOM", "1.2"))

LATENCY_WINDOW_SIZE = int(os.getenv("LATENCY_WINDOW_SIZE", "300"))

WORKING_WIDTH = int(os.getenv("WORKING_WIDTH", "320"))
WORKING_HEIGHT = int(os.getenv("WORKING_HEIGHT", "240"))


@dataclass(frozen=True)
class SchedulerSettings:
    target_fps: float = TARGET_FPS
    min_delay_ms: float = MIN_DELAY_MS
    max_delay_ms: float = MAX_DELAY_MS
    fallback_delay_ms: float = FALLBACK_DELAY_MS
    headroom: float = DELAY_HEADROOM
    window_size: int = LATENCY_WINDOW_SIZE

    def __post_init__(self):
        if self.target_fps <= 0:
            raise ValueError("target_fps must be positive")
        if self.min_delay_ms <= 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError("delay bounds must satisfy 0 < min_delay_ms <= max_delay_ms")
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")

    def clamp_delay(self, delay_ms: float) -> float:
        return max(self.min_delay_ms, min(self.max_delay_ms, delay_ms))

    @property
    def initial_delay_ms(self) -> float:
        return self.clamp_delay(1000.0 / self.target_fps)
