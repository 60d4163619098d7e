"""Types for the session state machine and registry."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from pydantic import BaseModel, Field

SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_STREAM = "awaiting_stream"
    ACTIVE = "active"
    CLOSED = "closed"


class SessionEvent(str, Enum):
    """Lifecycle triggers emitted by the peer connection."""
    CONNECTION_OPENED = "connection_opened"
    STREAM_ACQUIRED = "stream_acquired"
    STREAM_LOST = "stream_lost"
    CONNECTION_CLOSED = "connection_closed"
    CONNECTION_ERROR = "connection_error"


class Effect(str, Enum):
    START_SCHEDULER = "start_scheduler"
    STOP_SCHEDULER = "stop_scheduler"
    RELEASE_RESOURCES = "release_resources"


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: Tuple[Effect, ...] = ()


class SessionConfig(BaseModel):
    """Runtime configuration for one detection session."""

    session_id: str = Field(..., pattern=SESSION_ID_PATTERN.pattern)
    source_url: str = Field(..., min_length=1)
    loop: bool = True
    target_fps: float | None = Field(default=None, gt=0, le=120)
