"""Pure session transition function."""
from __future__ import annotations

from session.types import Effect, SessionEvent, SessionState, Transition

_TERMINATING = {SessionEvent.CONNECTION_CLOSED, SessionEvent.CONNECTION_ERROR}


def transition(state: SessionState, event: SessionEvent) -> Transition:
    """
    Compute the next state and the side effects to apply, without applying them.

    ``Closed`` is terminal. Pairs not listed below leave the state unchanged.
    """
    if state is SessionState.CLOSED:
        return Transition(SessionState.CLOSED)

    if event in _TERMINATING:
        if state is SessionState.ACTIVE:
            return Transition(
                SessionState.CLOSED,
                (Effect.STOP_SCHEDULER, Effect.RELEASE_RESOURCES),
            )
        return Transition(SessionState.CLOSED, (Effect.RELEASE_RESOURCES,))

    if state is SessionState.IDLE and event is SessionEvent.CONNECTION_OPENED:
        return Transition(SessionState.AWAITING_STREAM)
    if state is SessionState.AWAITING_STREAM and event is SessionEvent.STREAM_ACQUIRED:
        return Transition(SessionState.ACTIVE, (Effect.START_SCHEDULER,))
    if state is SessionState.ACTIVE and event is SessionEvent.STREAM_LOST:
        return Transition(SessionState.AWAITING_STREAM, (Effect.STOP_SCHEDULER,))

    return Transition(state)
