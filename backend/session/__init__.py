"""Detection session lifecycle package."""

from .exceptions import (
    ResourceLimitExceededError,
    SessionAlreadyExistsError,
    SessionClosedError,
    SessionError,
    SessionNotFoundError,
)
from .machine import transition
from .registry import SessionRegistry
from .session import DetectionSession
from .types import (
    SESSION_ID_PATTERN,
    Effect,
    SessionConfig,
    SessionEvent,
    SessionState,
    Transition,
)

__all__ = [
    "SESSION_ID_PATTERN",
    "DetectionSession",
    "Effect",
    "ResourceLimitExceededError",
    "SessionAlreadyExistsError",
    "SessionClosedError",
    "SessionConfig",
    "SessionError",
    "SessionEvent",
    "SessionNotFoundError",
    "SessionRegistry",
    "SessionState",
    "Transition",
    "transition",
]
