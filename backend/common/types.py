"""
Shared detection and telemetry models.

Boxes are (x, y, width, height) with (x, y) the top-left corner, in pixels of
the frame they were computed on.
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height


class Detection(BaseModel):
    """One recognised object in a frame."""
    label: str
    score: float = Field(..., ge=0.0, le=1.0)
    box: Box


class Snapshot(BaseModel):
    """Telemetry derived after each recorded frame."""
    fps: float
    latency_ms: int
    p95_latency_ms: int
    inference_ms: int
    frames_processed: int
    window_size: int
