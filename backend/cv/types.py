"""
Internal data structures and collaborator contracts for the CV pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Tuple

import numpy as np

from common.types import Detection, Snapshot


class VideoSource(Protocol):
    def is_ready(self) -> bool: ...

    def current_frame(self) -> np.ndarray: ...

    def natural_dimensions(self) -> Tuple[int, int]: ...


class Detector(Protocol):
    async def detect(self, image: np.ndarray) -> List[Detection]: ...


class Renderer(Protocol):
    def render(self, detections: List[Detection]) -> None: ...


class TelemetrySink(Protocol):
    def publish_snapshot(self, session_id: str, snapshot: Snapshot) -> object: ...


@dataclass
class FrameJob:
    """One detection attempt; lives for a single scheduler cycle."""
    captured_at: float
    submitted_at: float
    image: np.ndarray  # the scheduler's working buffer, not a copy
    completed_at: Optional[float] = None

    @property
    def processing_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return self.completed_at - self.submitted_at


class CycleOutcome(str, Enum):
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class CycleResult:
    outcome: CycleOutcome
    delay_ms: float
    detections: Tuple[Detection, ...] = ()
    snapshot: Optional[Snapshot] = None
